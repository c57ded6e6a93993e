"""Frame composition for the 600x448 4-bit ACeP panel.

Frames are packed two pixels per byte, the left pixel in the high nibble.
A landscape item already fills the panel. Portrait items are half as wide:
a single one is centred on a blank canvas, a pair is placed side by side.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from ..exceptions import DataCorruptionError
from ..store.models import MediaItem, Selection

logger = logging.getLogger(__name__)

EPD_WIDTH = 600
EPD_HEIGHT = 448
ROW_BYTES = EPD_WIDTH // 2  # 2 pixels are packed per byte
FRAME_BYTES = ROW_BYTES * EPD_HEIGHT

PORTRAIT_WIDTH = EPD_WIDTH // 2
PORTRAIT_ROW_BYTES = PORTRAIT_WIDTH // 2
PORTRAIT_BYTES = PORTRAIT_ROW_BYTES * EPD_HEIGHT

WHITE = 0x1


@dataclass(frozen=True)
class SeamPolicy:
    """How blank space and the seam between a portrait pair are filled.

    Attributes:
        blank_nibble: Palette index written into unused pixels (1 is white)
        gutter: When set, the two pixels meeting at the seam are forced blank
            so neither image bleeds into the byte it shares with the other half
    """

    blank_nibble: int = WHITE
    gutter: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.blank_nibble <= 0xF:
            raise ValueError(f"blank_nibble must fit in 4 bits, got {self.blank_nibble}")

    @property
    def blank_byte(self) -> int:
        return (self.blank_nibble << 4) | self.blank_nibble


class FrameComposer:
    """Packs a selection into one full-canvas buffer. Never modifies items."""

    def __init__(self, policy: SeamPolicy = SeamPolicy()) -> None:
        self.policy = policy

    def compose(self, selection: Selection) -> bytes:
        """Compose the frame for a selection.

        Raises:
            DataCorruptionError: If an item's buffer does not match its orientation
                or the selection is not one landscape item or one/two portrait items
        """
        return self.compose_items(selection.items)

    def compose_items(self, items: Sequence[MediaItem]) -> bytes:
        """Compose the frame for items given in display order (first is left)."""
        if not 1 <= len(items) <= 2:
            raise DataCorruptionError(
                "Selection must hold one or two items", details={"count": len(items)}
            )

        portraits = [item for item in items if item.is_portrait]

        if not portraits:
            if len(items) != 1:
                raise DataCorruptionError(
                    "Landscape items cannot be paired", details={"ids": [i.id for i in items]}
                )
            item = items[0]
            _check_size(item, FRAME_BYTES)
            return item.pixels

        if len(portraits) != len(items):
            raise DataCorruptionError(
                "Selection mixes orientations", details={"ids": [i.id for i in items]}
            )

        rows = [_portrait_rows(item) for item in portraits]
        frame = self._centre(rows[0]) if len(rows) == 1 else self._pair(rows[0], rows[1])
        return frame.tobytes()

    def _centre(self, rows: np.ndarray) -> np.ndarray:
        canvas = np.full((EPD_HEIGHT, ROW_BYTES), self.policy.blank_byte, dtype=np.uint8)
        offset = ROW_BYTES // 4
        canvas[:, offset : offset + PORTRAIT_ROW_BYTES] = rows
        return canvas

    def _pair(self, left: np.ndarray, right: np.ndarray) -> np.ndarray:
        canvas = np.empty((EPD_HEIGHT, ROW_BYTES), dtype=np.uint8)
        seam = PORTRAIT_ROW_BYTES
        canvas[:, :seam] = left
        canvas[:, seam:] = right

        if self.policy.gutter:
            blank = self.policy.blank_nibble
            # last byte of the left half: keep its left pixel, blank the seam pixel
            canvas[:, seam - 1] = (left[:, -1] & 0xF0) | blank
            # first byte of the right half: blank the seam pixel, keep its right pixel
            canvas[:, seam] = (blank << 4) | (right[:, 0] & 0x0F)

        return canvas


def _check_size(item: MediaItem, expected: int) -> None:
    if len(item.pixels) != expected:
        logger.critical(
            f"Album item {item.id} has {len(item.pixels)} bytes, expected {expected} "
            f"for {item.orientation.value}"
        )
        raise DataCorruptionError(
            "Stored item geometry does not match the canvas",
            item_id=item.id,
            expected=expected,
            actual=len(item.pixels),
        )


def _portrait_rows(item: MediaItem) -> np.ndarray:
    _check_size(item, PORTRAIT_BYTES)
    return np.frombuffer(item.pixels, dtype=np.uint8).reshape(EPD_HEIGHT, PORTRAIT_ROW_BYTES)
