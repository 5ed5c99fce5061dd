#!/usr/bin/env python
"""
LandLens - farm photo land analysis.

Main entry point: runs quality, area and terrain analysis on one photo and
prints a JSON report.

Usage
-----
    python main.py field.jpg --reference 1.7,120,300,40,90 --log-level INFO
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from loguru import logger

from landlens import __version__
from landlens.config import load_config
from landlens.core.area_estimation import AreaEstimator
from landlens.core.models import (
    BoundingBox,
    GeoLocation,
    ImageMetadata,
    ReferenceKind,
    ReferenceObject,
)
from landlens.core.preprocess import ImagePreprocessor
from landlens.core.quality import QualityAnalyzer
from landlens.core.terrain import TerrainClassifier
from landlens.utils.raster import decode_raster


def parse_reference(text: str) -> ReferenceObject:
    """Parse ``SIZE,X,Y,W,H`` or ``KIND:SIZE,X,Y,W,H`` into a reference object."""
    kind = ReferenceKind.POLE
    if ":" in text:
        kind_text, text = text.split(":", 1)
        try:
            kind = ReferenceKind(kind_text.strip().lower())
        except ValueError as exc:
            raise argparse.ArgumentTypeError(f"unknown reference kind: {kind_text}") from exc
    try:
        size, x, y, width, height = (float(v) for v in text.split(","))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"reference must be SIZE,X,Y,W,H, got {text!r}"
        ) from exc
    return ReferenceObject(kind, size, BoundingBox(x, y, width, height))


def parse_location(text: str) -> GeoLocation:
    """Parse ``LAT,LON`` into a GPS location.

    Raises
    ------
    argparse.ArgumentTypeError
        Raised when the text is not two comma-separated numbers.
    """
    try:
        latitude, longitude = (float(v) for v in text.split(","))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"location must be LAT,LON, got {text!r}") from exc
    return GeoLocation(latitude, longitude)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Parameters
    ----------
    argv : list[str], optional
        Arguments without the program name; ``None`` reads ``sys.argv``.

    Returns
    -------
    argparse.Namespace
        Parsed options.
    """
    parser = argparse.ArgumentParser(
        description="Estimate land area, terrain and photo quality from a farm photo."
    )
    parser.add_argument("image", type=Path, help="Path to the farm photo.")
    parser.add_argument(
        "--reference",
        type=parse_reference,
        action="append",
        default=[],
        help="Reference object as [KIND:]SIZE,X,Y,W,H (meters, pixels). Repeatable.",
    )
    parser.add_argument(
        "--location",
        type=parse_location,
        default=None,
        help="GPS location of the photo as LAT,LON.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON file with threshold overrides.",
    )
    parser.add_argument(
        "--sequential",
        action="store_true",
        help="Run estimators on the calling thread.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"],
        help="Log level for stderr output.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the LandLens command line.

    Returns
    -------
    int
        Exit code (0 for success, non-zero for error).
    """
    args = parse_args(argv)

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | "
               "<level>{level: <8}</level> | "
               "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
               "<level>{message}</level>",
        level=args.log_level,
    )

    if not args.image.is_file():
        logger.error(f"Image not found: {args.image}")
        return 2

    config = load_config(args.config)
    data = args.image.read_bytes()
    logger.info(f"Analysing {args.image} ({len(data)} bytes)")

    preprocessor = ImagePreprocessor(config.preprocess)
    upload = ImageMetadata(filename=args.image.name, location=args.location)
    validation = preprocessor.validate_image(data, upload)
    metadata = preprocessor.extract_metadata(data, upload)

    try:
        image = decode_raster(data)
    except ValueError as exc:
        logger.warning(f"Could not decode {args.image.name}, engines will fall back: {exc}")
        image = data

    parallel = not args.sequential
    quality = QualityAnalyzer(config.quality).assess(image)
    estimator = AreaEstimator(config.area)
    area = estimator.estimate_area(image, metadata, args.reference, parallel=parallel)
    classifier = TerrainClassifier(config.terrain)
    terrain = classifier.classify_terrain(image, metadata, parallel=parallel)

    report = {
        "quality": quality.to_dict(),
        "validation": validation.to_dict(),
        "area": area.to_dict(),
        "area_validation": estimator.validate_estimation(area).to_dict(),
        "terrain": terrain.to_dict(),
        "recommendations": {
            "area": list(estimator.get_estimation_recommendations(area)),
            "terrain": list(classifier.get_terrain_recommendations(terrain)),
        },
    }
    print(json.dumps(report, indent=2))
    logger.info("Analysis finished")
    return 0


if __name__ == "__main__":
    sys.exit(main())
