"""Conversion between ordinary pictures and packed 4-bit ACeP buffers."""

import logging
from typing import Union

import numpy as np
from PIL import Image, ImageOps

from ..store.models import Orientation
from .composer import EPD_HEIGHT, EPD_WIDTH, PORTRAIT_WIDTH

logger = logging.getLogger(__name__)

# 7-colour ACeP palette; list position is the nibble value sent to the panel
PALETTE: tuple[tuple[int, int, int], ...] = (
    (0, 0, 0),  # black
    (255, 255, 255),  # white
    (0, 255, 0),  # green
    (0, 0, 255),  # blue
    (255, 0, 0),  # red
    (255, 255, 0),  # yellow
    (255, 128, 0),  # orange
)


def target_size(orientation: Orientation) -> tuple[int, int]:
    """Pixel size (width, height) of a stored item."""
    if orientation is Orientation.PORTRAIT:
        return PORTRAIT_WIDTH, EPD_HEIGHT
    return EPD_WIDTH, EPD_HEIGHT


def detect_orientation(image: Image.Image) -> Orientation:
    """Portrait when the picture is taller than it is wide."""
    width, height = image.size
    return Orientation.PORTRAIT if height > width else Orientation.LANDSCAPE


def _palette_image() -> Image.Image:
    flat = [channel for colour in PALETTE for channel in colour]
    palette = Image.new("P", (1, 1))
    palette.putpalette(flat + [0] * (768 - len(flat)))
    return palette


def quantize(image: Image.Image, dither: bool = True) -> np.ndarray:
    """Map an RGB picture onto palette indices.

    Returns:
        2-D uint8 array of palette indices in the range 0..6
    """
    if image.mode != "RGB":
        image = image.convert("RGB")

    mode = Image.Dither.FLOYDSTEINBERG if dither else Image.Dither.NONE
    quantized = image.quantize(palette=_palette_image(), dither=mode)

    # padding entries of the palette are black; fold them back onto index 0
    lookup = np.zeros(256, dtype=np.uint8)
    lookup[: len(PALETTE)] = np.arange(len(PALETTE), dtype=np.uint8)
    return lookup[np.asarray(quantized, dtype=np.uint8)]


def pack_indices(indices: np.ndarray) -> bytes:
    """Pack a 2-D array of 4-bit indices two per byte, left pixel high."""
    height, width = indices.shape
    if width % 2:
        raise ValueError(f"Width must be even to pack two pixels per byte, got {width}")
    pairs = indices.astype(np.uint8).reshape(height, width // 2, 2)
    return ((pairs[:, :, 0] << 4) | (pairs[:, :, 1] & 0x0F)).astype(np.uint8).tobytes()


def pack_image(
    image: Image.Image, orientation: Union[Orientation, None] = None, dither: bool = True
) -> tuple[bytes, Orientation]:
    """Fit a picture to the album geometry and pack it for the panel.

    Args:
        image: Source picture in any Pillow mode
        orientation: Target orientation, detected from the picture when None
        dither: Apply Floyd-Steinberg dithering while quantizing

    Returns:
        Tuple of packed buffer and the orientation it was packed for
    """
    orientation = orientation or detect_orientation(image)
    size = target_size(orientation)

    fitted = ImageOps.fit(image.convert("RGB"), size, Image.Resampling.LANCZOS)
    packed = pack_indices(quantize(fitted, dither=dither))

    logger.debug(f"Packed {image.size} picture as {orientation.value} ({len(packed)} bytes)")
    return packed, orientation


def unpack_frame(buffer: bytes, width: int = EPD_WIDTH, height: int = EPD_HEIGHT) -> Image.Image:
    """Decode a packed buffer into an RGB picture for previews.

    Raises:
        ValueError: If the buffer length does not match the given geometry
    """
    expected = width * height // 2
    if len(buffer) != expected:
        raise ValueError(f"Buffer holds {len(buffer)} bytes, expected {expected}")

    packed = np.frombuffer(buffer, dtype=np.uint8).reshape(height, width // 2)
    indices = np.empty((height, width), dtype=np.uint8)
    indices[:, 0::2] = packed >> 4
    indices[:, 1::2] = packed & 0x0F

    # nibbles outside the palette (e.g. the panel's "clean" value) render white
    colours = np.array(PALETTE + ((255, 255, 255),) * (16 - len(PALETTE)), dtype=np.uint8)
    return Image.fromarray(colours[indices])
