"""Raster access layer: decoding and read-only derived rasters."""

from __future__ import annotations

import io
from dataclasses import dataclass

import numpy as np
from PIL import Image, UnidentifiedImageError
from scipy import ndimage


@dataclass(frozen=True, eq=False)
class Raster:
    """Immutable decoded pixel grid.

    Parameters
    ----------
    pixels : numpy.ndarray
        ``uint8`` samples with shape ``(H, W, C)`` where ``C`` is 1 or 3.
        A private read-only copy is kept.

    Examples
    --------
    >>> raster = Raster.from_array(np.zeros((4, 6, 3), dtype=np.uint8))
    >>> raster.width, raster.height, raster.channels
    (6, 4, 3)
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        pixel_array = np.array(self.pixels, dtype=np.uint8, copy=True)
        if pixel_array.ndim == 2:
            pixel_array = pixel_array[:, :, np.newaxis]
        if pixel_array.ndim != 3 or pixel_array.shape[2] not in (1, 3):
            raise ValueError("pixels must have shape (H, W) or (H, W, 1|3)")
        pixel_array.flags.writeable = False
        object.__setattr__(self, "pixels", pixel_array)

    @classmethod
    def from_array(cls, array: np.ndarray) -> Raster:
        """Build a raster from an ``(H, W)`` or ``(H, W, C)`` array."""
        return cls(pixels=np.asarray(array))

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.pixel_count == 0

    def to_image(self) -> Image.Image:
        """Convert to a Pillow image (``L`` or ``RGB``)."""
        if self.channels == 1:
            return Image.fromarray(np.ascontiguousarray(self.pixels[:, :, 0]))
        return Image.fromarray(np.ascontiguousarray(self.pixels))

    def greyscale(self) -> Raster:
        """Return a single-channel luma raster (ITU-R 601-2 weights)."""
        if self.channels == 1:
            return self
        return Raster.from_array(np.asarray(self.to_image().convert("L")))

    def rgb(self) -> Raster:
        """Return a three-channel raster, replicating a single channel."""
        if self.channels == 3:
            return self
        return Raster.from_array(np.repeat(self.pixels, 3, axis=2))

    def resize(self, width: int, height: int) -> Raster:
        """Return a raster resampled to exactly ``width`` x ``height``."""
        if width < 1 or height < 1:
            raise ValueError("resize target must be at least 1x1")
        if self.is_empty:
            raise ValueError("cannot resize an empty raster")
        resized = self.to_image().resize((width, height), Image.Resampling.BILINEAR)
        return Raster.from_array(np.asarray(resized))

    def fit_within(self, max_width: int, max_height: int) -> Raster:
        """Shrink to fit a box, keeping aspect ratio and never upscaling."""
        if self.width <= max_width and self.height <= max_height:
            return self
        scale = min(max_width / self.width, max_height / self.height)
        new_w = max(1, int(round(self.width * scale)))
        new_h = max(1, int(round(self.height * scale)))
        return self.resize(new_w, new_h)

    def blur(self, sigma: float) -> Raster:
        """Return a Gaussian-blurred copy."""
        if sigma <= 0:
            return self
        blurred = ndimage.gaussian_filter(
            self.pixels.astype(np.float64), sigma=(sigma, sigma, 0)
        )
        return Raster.from_array(np.clip(np.rint(blurred), 0, 255))

    def as_float(self) -> np.ndarray:
        """Return a writable ``float64`` copy of the samples."""
        return self.pixels.astype(np.float64)

    def channel_stats(self) -> tuple[np.ndarray, np.ndarray]:
        """Per-channel mean and standard deviation.

        Returns
        -------
        tuple[numpy.ndarray, numpy.ndarray]
            ``(means, stds)`` each with shape ``(C,)``.
        """
        flat = self.pixels.reshape(-1, self.channels).astype(np.float64)
        return flat.mean(axis=0), flat.std(axis=0)


@dataclass(frozen=True)
class ImageProbe:
    """Header facts about an encoded image."""

    format: str
    width: int
    height: int
    mode: str
    orientation: int | None


def open_image(data: bytes) -> Image.Image:
    """Open encoded bytes as a loaded Pillow image.

    Raises
    ------
    ValueError
        Raised when the bytes are empty or not a decodable image.
    """
    if not data:
        raise ValueError("image data is empty")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (
        UnidentifiedImageError,
        OSError,
        SyntaxError,
        Image.DecompressionBombError,
    ) as exc:
        raise ValueError(f"could not decode image data: {exc}") from exc
    return image


def _exif_orientation(image: Image.Image) -> int | None:
    """Read EXIF orientation tag (274) when present."""
    value = image.getexif().get(274)
    return int(value) if value else None


def probe_image(data: bytes) -> ImageProbe:
    """Read format, size and orientation without keeping pixel data.

    Raises
    ------
    ValueError
        Raised when the bytes are not a decodable image.
    """
    image = open_image(data)
    return ImageProbe(
        format=(image.format or "").lower(),
        width=image.width,
        height=image.height,
        mode=image.mode,
        orientation=_exif_orientation(image),
    )


def image_to_raster(image: Image.Image) -> Raster:
    """Convert a Pillow image to an RGB raster."""
    if image.mode != "RGB":
        image = image.convert("RGB")
    return Raster.from_array(np.asarray(image))


def decode_raster(data: bytes) -> Raster:
    """Decode encoded image bytes into an RGB raster.

    Parameters
    ----------
    data : bytes
        Encoded image (JPEG, PNG, WebP, TIFF, ...).

    Returns
    -------
    Raster
        Three-channel raster; alpha is dropped and greyscale expanded.

    Raises
    ------
    ValueError
        Raised when the bytes cannot be decoded.
    """
    return image_to_raster(open_image(data))


def encode_raster(raster: Raster, fmt: str = "png", quality: int | None = None) -> bytes:
    """Encode a raster to image bytes.

    Parameters
    ----------
    raster : Raster
        Source raster.
    fmt : str
        Pillow format name, e.g. ``png`` or ``jpeg``.
    quality : int | None
        Encoder quality for lossy formats.
    """
    pil_format = "JPEG" if fmt.lower() in ("jpg", "jpeg") else fmt.upper()
    buffer = io.BytesIO()
    save_kwargs = {} if quality is None else {"quality": int(quality)}
    raster.to_image().save(buffer, format=pil_format, **save_kwargs)
    return buffer.getvalue()
