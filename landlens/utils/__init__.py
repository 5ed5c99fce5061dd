"""Utility package exports for LandLens."""

from landlens.utils.geometry import Point, bounding_rectangle, polygon_area, rectangle
from landlens.utils.parallel import fan_out
from landlens.utils.raster import (
    ImageProbe,
    Raster,
    decode_raster,
    encode_raster,
    open_image,
    probe_image,
)

__all__ = [
    "ImageProbe",
    "Point",
    "Raster",
    "bounding_rectangle",
    "decode_raster",
    "encode_raster",
    "fan_out",
    "open_image",
    "polygon_area",
    "probe_image",
    "rectangle",
]
