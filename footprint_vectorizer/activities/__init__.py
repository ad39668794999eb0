"""Pipeline stage functions.

Each module implements one pure, synchronous stage:
- morphology: binary closing (dilate then erode) of the mask
- decode_mask: sanitise, validate and rasterize the SVG mask
- georeference: pixel ↔ geographic affine mapping
- process_rings: close, simplify, measure and filter traced rings
- export_archive: GeoJSON collection and zipped shapefile export
"""
