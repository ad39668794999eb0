"""Shared helpers: PNG/base64 image codec."""
