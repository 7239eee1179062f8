"""
Image normalizer: crop and re-encode images to a platform's accepted
aspect-ratio and size envelope.

Policy for a source image with ratio ``r = width / height``:

- ``r`` inside the near-square band (inclusive): square preset.
- ``r < 1``: portrait preset; ``r > 1``: landscape preset.
- ``r`` outside the platform's acceptable range (when it has one): square
  preset regardless of the above.

Processing always resizes with centre-crop-to-fill (never letterboxed,
never stretched, upscaling allowed), applies a mild unsharp mask and
re-encodes as optimized baseline JPEG at quality 95 with 4:4:4 chroma.
"""

import io
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from src.exceptions import ImageNormalizationError
from src.models import Platform

logger = logging.getLogger(__name__)

JPEG_QUALITY = 95
SHARPEN_RADIUS = 0.5


@dataclass(frozen=True)
class PlatformImageProfile:
    """Aspect-ratio envelope and size presets of one platform."""

    name: str
    square: Tuple[int, int]
    portrait: Tuple[int, int]
    landscape: Tuple[int, int]
    near_square_min: float = 0.95
    near_square_max: float = 1.05
    min_ratio: Optional[float] = None
    max_ratio: Optional[float] = None

    def is_acceptable(self, ratio: float) -> bool:
        if self.min_ratio is not None and ratio < self.min_ratio:
            return False
        if self.max_ratio is not None and ratio > self.max_ratio:
            return False
        return True

    def target_size(self, ratio: float) -> Tuple[int, int]:
        """Pick the preset for an image with the given aspect ratio."""
        if not self.is_acceptable(ratio):
            return self.square
        if self.near_square_min <= ratio <= self.near_square_max:
            return self.square
        if ratio < 1:
            return self.portrait
        return self.landscape


INSTAGRAM_PROFILE = PlatformImageProfile(
    name="instagram",
    square=(1080, 1080),
    portrait=(1080, 1350),
    landscape=(1080, 566),
    min_ratio=0.8,
    max_ratio=1.91,
)

LINKEDIN_PROFILE = PlatformImageProfile(
    name="linkedin",
    square=(1200, 1200),
    portrait=(1200, 1500),
    landscape=(1200, 627),
)

PLATFORM_PROFILES: Dict[Platform, PlatformImageProfile] = {
    Platform.INSTAGRAM: INSTAGRAM_PROFILE,
    Platform.LINKEDIN: LINKEDIN_PROFILE,
}


def read_dimensions(image_bytes: bytes) -> Tuple[int, int]:
    """Return ``(width, height)`` of an encoded image.

    Raises:
        ImageNormalizationError: If the dimensions cannot be read.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as image:
            width, height = image.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageNormalizationError(f"Could not read image dimensions: {exc}") from exc
    if not width or not height:
        raise ImageNormalizationError("Could not read image dimensions")
    return width, height


def normalize_image(image_bytes: bytes, profile: PlatformImageProfile) -> bytes:
    """Crop, sharpen and re-encode *image_bytes* for *profile*.

    Args:
        image_bytes: Encoded source image (any format Pillow reads).
        profile: Target platform profile.

    Returns:
        JPEG bytes at exactly the chosen preset's dimensions.

    Raises:
        ImageNormalizationError: If the source cannot be decoded. Not
            retryable.
    """
    read_dimensions(image_bytes)

    try:
        with Image.open(io.BytesIO(image_bytes)) as source:
            source = ImageOps.exif_transpose(source)
            width, height = source.size
            ratio = width / height
            target = profile.target_size(ratio)
            if source.mode != "RGB":
                source = source.convert("RGB")
            fitted = ImageOps.fit(
                source,
                target,
                method=Image.Resampling.LANCZOS,
                centering=(0.5, 0.5),
            )
            sharpened = fitted.filter(
                ImageFilter.UnsharpMask(radius=SHARPEN_RADIUS, percent=80, threshold=0)
            )
            output = io.BytesIO()
            sharpened.save(
                output,
                format="JPEG",
                quality=JPEG_QUALITY,
                subsampling=0,
                optimize=True,
            )
    except (Image.DecompressionBombError, OSError, ValueError) as exc:
        raise ImageNormalizationError(f"Failed to process image: {exc}") from exc

    logger.info(
        "Image normalized for %s: %dx%d (ratio %.3f) -> %dx%d",
        profile.name,
        width,
        height,
        ratio,
        target[0],
        target[1],
    )
    return output.getvalue()


def normalize_for_platform(image_bytes: bytes, platform: Platform) -> bytes:
    """Normalize for *platform*; platforms without a profile pass through."""
    profile = PLATFORM_PROFILES.get(platform)
    if profile is None:
        return image_bytes
    return normalize_image(image_bytes, profile)


__all__ = [
    "PlatformImageProfile",
    "INSTAGRAM_PROFILE",
    "LINKEDIN_PROFILE",
    "PLATFORM_PROFILES",
    "read_dimensions",
    "normalize_image",
    "normalize_for_platform",
]
