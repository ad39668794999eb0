"""Export accumulated features as GeoJSON or a zipped ESRI Shapefile.

The shapefile is written with ``fiona`` into a temporary directory and
its sidecar files (``.shp``, ``.shx``, ``.dbf``, ``.prj``, ``.cpg``) are
zipped under ``<folder>/``.  The archive is returned as bytes so the
caller decides where it goes (download, file, blob).
"""

from __future__ import annotations

import io
import logging
import tempfile
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING

import fiona
from fiona.errors import FionaError

from footprint_vectorizer.core.constants import (
    DEFAULT_EXPORT_FOLDER,
    DEFAULT_EXPORT_LAYER,
    WGS84,
)
from footprint_vectorizer.core.exceptions import ExportError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from footprint_vectorizer.models.feature import Feature

logger = logging.getLogger("footprint_vectorizer.activities.export_archive")

SHAPEFILE_DRIVER = "ESRI Shapefile"
SHAPEFILE_SCHEMA = {
    "geometry": "Polygon",
    "properties": {"id": "str:64", "area_m2": "float:16.2"},
}


def build_feature_collection(features: Sequence[Feature]) -> dict[str, object]:
    """Return the features as a GeoJSON ``FeatureCollection`` mapping."""
    return {
        "type": "FeatureCollection",
        "features": [f.to_geojson() for f in features],
    }


def export_shapefile_zip(
    features: Sequence[Feature],
    *,
    folder: str = DEFAULT_EXPORT_FOLDER,
    layer: str = DEFAULT_EXPORT_LAYER,
) -> bytes:
    """Write *features* to a polygon shapefile and return it zipped.

    Args:
        features: Features to export, in order.
        folder: Directory name inside the archive.
        layer: Shapefile base name (``<layer>.shp`` etc.).

    Returns:
        The zip archive bytes.

    Raises:
        ExportError: If there is nothing to export or writing fails.
    """
    if not features:
        msg = "There are no features to export"
        raise ExportError(msg)

    try:
        with tempfile.TemporaryDirectory(prefix="footprints-") as tmp:
            shp_path = Path(tmp) / f"{layer}.shp"
            with fiona.open(
                shp_path,
                "w",
                driver=SHAPEFILE_DRIVER,
                schema=SHAPEFILE_SCHEMA,
                crs=WGS84,
            ) as sink:
                sink.writerecords(
                    {
                        "geometry": {
                            "type": "Polygon",
                            "coordinates": [list(f.exterior_coords)],
                        },
                        "properties": {"id": f.feature_id, "area_m2": f.area_m2},
                    }
                    for f in features
                )

            buffer = io.BytesIO()
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for part in sorted(Path(tmp).iterdir()):
                    archive.write(part, arcname=f"{folder}/{part.name}")
    except (FionaError, OSError, ValueError) as exc:
        msg = f"Failed to write shapefile archive: {exc}"
        raise ExportError(msg) from exc

    data = buffer.getvalue()
    logger.info(
        "Archive exported | features=%d | folder=%s | layer=%s | bytes=%d",
        len(features),
        folder,
        layer,
        len(data),
    )
    return data
