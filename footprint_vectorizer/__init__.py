"""Building footprint vectorizer.

Turns an AI-generated binary segmentation mask of a satellite image tile
into clean, georeferenced polygon features ready for GIS export.
"""

__version__ = "0.1.0"
