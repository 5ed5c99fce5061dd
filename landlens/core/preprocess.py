"""Upload validation and image preprocessing."""

from __future__ import annotations

from typing import Any

import numpy as np
from loguru import logger
from PIL import ExifTags, Image, ImageOps

from landlens.config import DEFAULT_CONFIG, PreprocessLimits
from landlens.core.models import (
    ImageMetadata,
    ProcessedImage,
    ProcessedMetrics,
    ProcessingOptions,
    Transform,
    ValidationResult,
)
from landlens.core.outcome import guard
from landlens.core.quality import sharpness_score
from landlens.utils.raster import (
    Raster,
    decode_raster,
    encode_raster,
    image_to_raster,
    open_image,
    probe_image,
)


def compute_processed_metrics(raster: Raster) -> ProcessedMetrics:
    """Sharpness, brightness, contrast and colorfulness of a raster.

    Contrast here is the mean channel standard deviation over 255, unlike the
    quality analyzer which divides by 128.
    """
    if raster.is_empty:
        return ProcessedMetrics(0.0, 0.0, 0.0, 0.0)
    means, stds = raster.channel_stats()
    colorfulness = 0.0
    if raster.channels >= 3:
        r, g, b = means[:3]
        rg = abs(r - g)
        yb = abs((r + g) / 2.0 - b)
        colorfulness = float(np.sqrt(rg * rg + yb * yb) / 255.0)
    return ProcessedMetrics(
        sharpness=sharpness_score(raster),
        brightness=float(means.mean() / 255.0),
        contrast=float(stds.mean() / 255.0),
        colorfulness=colorfulness,
    )


def _output_format(source_format: str | None) -> str:
    Image.init()
    if source_format and source_format.upper() in Image.SAVE:
        return source_format.upper()
    return "PNG"


def _plain_exif_value(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, (int, float, str)) or value is None:
        return value
    if isinstance(value, tuple):
        return [_plain_exif_value(v) for v in value]
    return str(value)


class ImagePreprocessor:
    """Validate, normalize and re-encode uploaded photos.

    Parameters
    ----------
    limits : PreprocessLimits, optional
        Size, format and resolution bounds plus resize defaults.
    """

    def __init__(self, limits: PreprocessLimits | None = None):
        self.limits = limits or DEFAULT_CONFIG.preprocess

    def validate_image(
        self, data: bytes, metadata: ImageMetadata | None = None
    ) -> ValidationResult:
        """Check byte size, format and resolution bounds.

        Never raises; every violation becomes one message.
        """
        limits = self.limits
        errors: list[str] = []
        if len(data) > limits.max_file_size:
            errors.append(
                f"File size {len(data) / 1024 / 1024:.2f}MB exceeds maximum allowed "
                f"size of {limits.max_file_size / 1024 / 1024:g}MB"
            )

        try:
            probe = probe_image(data)
        except ValueError:
            errors.append("Invalid image file: unable to process image data")
            return ValidationResult(valid=False, errors=tuple(errors))

        if probe.format not in limits.supported_formats:
            errors.append(
                f"Unsupported image format: {probe.format}. "
                f"Supported formats: {', '.join(limits.supported_formats)}"
            )
        dims = f"{probe.width}x{probe.height}"
        if probe.width < limits.min_width or probe.height < limits.min_height:
            errors.append(
                f"Image resolution {dims} is too low. "
                f"Minimum required: {limits.min_width}x{limits.min_height}"
            )
        if probe.width > limits.max_width or probe.height > limits.max_height:
            errors.append(
                f"Image resolution {dims} is too high. "
                f"Maximum allowed: {limits.max_width}x{limits.max_height}"
            )

        if errors:
            name = metadata.filename if metadata and metadata.filename else "upload"
            logger.info(f"Validation of {name} failed with {len(errors)} error(s)")
        return ValidationResult(valid=not errors, errors=tuple(errors))

    def extract_metadata(
        self, data: bytes, upload: ImageMetadata | None = None
    ) -> ImageMetadata:
        """Combine upload metadata with facts read from the image header."""
        upload = upload or ImageMetadata()
        probe = guard("metadata probe", lambda: probe_image(data), lambda: None).value
        image_format = probe.format if probe else "unknown"
        orientation = (probe.orientation if probe else None) or 1
        return ImageMetadata(
            filename=upload.filename or "unknown.jpg",
            size=len(data),
            mime_type=upload.mime_type or f"image/{image_format}",
            location=upload.location,
            device_make=upload.device_make,
            device_model=upload.device_model,
            orientation=orientation,
        )

    def preprocess_image(
        self,
        data: bytes,
        metadata: ImageMetadata | None = None,
        options: ProcessingOptions | None = None,
    ) -> ProcessedImage:
        """Apply orientation, resize, contrast and compression in that order.

        Parameters
        ----------
        data : bytes
            Encoded source image; run ``validate_image`` first.
        metadata : ImageMetadata, optional
            Orientation correction only runs when it declares an orientation.
        options : ProcessingOptions, optional
            Which transforms to apply.

        Returns
        -------
        ProcessedImage
            Encoded result, its raster, the applied transforms and the metrics
            of the result.

        Raises
        ------
        ValueError
            Raised when ``data`` is not a decodable image.
        """
        metadata = metadata or ImageMetadata()
        options = options or ProcessingOptions()
        image = open_image(data)
        source_format = image.format
        applied: list[Transform] = []

        if options.correct_orientation and metadata.orientation:
            image = ImageOps.exif_transpose(image)
            applied.append(Transform.ORIENTATION_CORRECTION)

        working = image_to_raster(image)
        if options.resize_for_analysis and (options.target_width or options.target_height):
            working = working.fit_within(
                options.target_width or self.limits.default_target_width,
                options.target_height or self.limits.default_target_height,
            )
            applied.append(Transform.RESIZE)

        if options.enhance_contrast:
            working = image_to_raster(ImageOps.autocontrast(working.to_image()))
            applied.append(Transform.CONTRAST_ENHANCEMENT)

        quality = None
        if options.compression_quality and options.compression_quality < 100:
            output_format = "JPEG"
            quality = int(options.compression_quality)
            applied.append(Transform.COMPRESSION)
        else:
            output_format = _output_format(source_format)
        processed = encode_raster(working, output_format, quality)

        raster = decode_raster(processed)
        logger.info(
            f"Preprocessed {metadata.filename or 'image'} to "
            f"{raster.width}x{raster.height} {output_format} "
            f"with {[t.value for t in applied]}"
        )
        return ProcessedImage(
            original=data,
            processed=processed,
            raster=raster,
            metadata=metadata,
            transforms=tuple(applied),
            metrics=compute_processed_metrics(raster),
        )

    def generate_thumbnail(self, data: bytes, size: int | None = None) -> bytes:
        """Centre-cropped square JPEG preview.

        Raises
        ------
        ValueError
            Raised when ``data`` is not a decodable image or ``size`` < 1.
        """
        size = size or self.limits.thumbnail_size
        if size < 1:
            raise ValueError("thumbnail size must be positive")
        image = open_image(data).convert("RGB")
        thumb = ImageOps.fit(image, (size, size), Image.Resampling.BILINEAR, centering=(0.5, 0.5))
        return encode_raster(image_to_raster(thumb), "jpeg", self.limits.thumbnail_quality)

    def extract_exif_data(self, data: bytes) -> dict[str, Any] | None:
        """Header and EXIF summary, or ``None`` when the data cannot be opened."""
        try:
            image = open_image(data)
        except ValueError:
            return None
        exif = image.getexif()
        bands = image.getbands()
        return {
            "width": image.width,
            "height": image.height,
            "format": (image.format or "").lower(),
            "mode": image.mode,
            "channels": len(bands),
            "orientation": exif.get(274),
            "has_alpha": "A" in bands or "transparency" in image.info,
            "dpi": _plain_exif_value(image.info.get("dpi")),
            "exif": {
                ExifTags.TAGS.get(tag, str(tag)): _plain_exif_value(value)
                for tag, value in exif.items()
            },
        }
