"""Command-line entry point: vectorize building footprints for one area.

Example::

    footprint-vectorizer --image ortho.tif --bbox -49.36 -25.57 -49.35 -25.56 \\
        --out footprints.zip --geojson footprints.geojson

Processing parameters come from the environment (see
``PipelineConfig.from_env``); ``--service-url`` overrides
``SEGMENTATION_URL``.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path

from footprint_vectorizer import __version__
from footprint_vectorizer.activities.export_archive import build_feature_collection
from footprint_vectorizer.core.config import PipelineConfig
from footprint_vectorizer.core.exceptions import PipelineError
from footprint_vectorizer.models.geometry import BoundingBox
from footprint_vectorizer.orchestrators.pipeline import PipelineOrchestrator, RunOutcome
from footprint_vectorizer.providers.geotiff_capture import GeoTiffCapture
from footprint_vectorizer.providers.http_segmentation import HttpSegmentationService
from footprint_vectorizer.providers.raster_tracer import RasterioTracer

logger = logging.getLogger("footprint_vectorizer.cli")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="footprint-vectorizer",
        description="Extract georeferenced building footprints from an orthophoto.",
    )
    p.add_argument("--image", required=True, type=Path, help="EPSG:4326 raster to capture from")
    p.add_argument(
        "--bbox",
        required=True,
        nargs=4,
        type=float,
        metavar=("WEST", "SOUTH", "EAST", "NORTH"),
        help="area of interest in decimal degrees",
    )
    p.add_argument("--out", required=True, type=Path, help="zipped shapefile to write")
    p.add_argument("--geojson", type=Path, help="also write a GeoJSON FeatureCollection")
    p.add_argument("--service-url", help="segmentation endpoint (overrides SEGMENTATION_URL)")
    p.add_argument("--max-size", type=int, help="cap on the captured image's longest side (px)")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return p


async def _run(args: argparse.Namespace, config: PipelineConfig) -> int:
    bbox = BoundingBox.from_bounds(args.bbox)
    orchestrator = PipelineOrchestrator(
        GeoTiffCapture(args.image, max_size=args.max_size),
        HttpSegmentationService(
            config.segmentation_url, timeout_s=config.segmentation_timeout_s
        ),
        RasterioTracer(threshold=config.trace_threshold),
        config=config,
    )
    session = orchestrator.new_session()

    result = await orchestrator.run(session, bbox)
    if result.outcome is not RunOutcome.COMPLETED:
        logger.error("No footprints written | outcome=%s", result.outcome.value)
        return 1

    args.out.write_bytes(orchestrator.export_archive(session))
    logger.info("Archive written | path=%s | features=%d", args.out, len(session.accumulator))

    if args.geojson is not None:
        collection = build_feature_collection(session.accumulator.all())
        args.geojson.write_text(json.dumps(collection), encoding="utf-8")
        logger.info("GeoJSON written | path=%s", args.geojson)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = PipelineConfig.from_env()
        if args.service_url:
            config = dataclasses.replace(config, segmentation_url=args.service_url)
        return asyncio.run(_run(args, config))
    except PipelineError as exc:
        logger.error("%s", exc.message)
        return 1
    except (OSError, ValueError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
