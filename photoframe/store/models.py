"""Data models for album items, selections and device telemetry."""

import sqlite3
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class Orientation(str, Enum):
    """Orientation of a stored album item."""

    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"


class MediaItem(BaseModel):
    """One pre-rendered album picture as stored in the `album` table."""

    id: str
    product_url: str = ""
    last_shown: int = 0  # unix seconds
    orientation: Orientation
    pixels: bytes = Field(repr=False)

    @property
    def is_portrait(self) -> bool:
        return self.orientation is Orientation.PORTRAIT

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "MediaItem":
        """Build an item from an `album` row selected with all columns."""
        return cls(
            id=row["item_id"],
            product_url=row["product_url"] or "",
            last_shown=row["last_shown_ts"],
            orientation=Orientation.PORTRAIT if row["portrait"] else Orientation.LANDSCAPE,
            pixels=bytes(row["data"]),
        )


class AlbumEntry(BaseModel):
    """Album item metadata without the pixel payload."""

    id: str
    product_url: str = ""
    last_shown: int = 0
    orientation: Orientation
    size_bytes: int


class Selection(BaseModel):
    """Items picked for one frame.

    `items` holds one landscape item or one/two portrait items in display
    order; the first element is placed left. `primary_id` names the item that
    was least recently shown.
    """

    items: tuple[MediaItem, ...]
    primary_id: str

    @property
    def portrait_count(self) -> int:
        return sum(1 for item in self.items if item.is_portrait)

    @property
    def secondary_id(self) -> Optional[str]:
        for item in self.items:
            if item.id != self.primary_id:
                return item.id
        return None

    @property
    def item_refs(self) -> tuple[Optional[str], Optional[str]]:
        """Identifiers recorded with telemetry: primary first, then secondary."""
        return self.primary_id, self.secondary_id


class TelemetryPayload(BaseModel):
    """Telemetry document uploaded by a device.

    Devices send camelCase keys; snake_case field names are accepted too.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    device_identity: uuid.UUID = Field(alias="uuidNumber")
    chip_id: Optional[int] = Field(default=None, alias="chipID")
    boot_code: int = Field(alias="bootCode")
    battery_voltage: int = Field(alias="batVoltage")
    error_code: int = Field(alias="errorCode")
    return_code: Optional[int] = Field(default=None, alias="returnCode")
    bytes_written: Optional[int] = Field(default=None, alias="writeBytes")


class FrameTelemetry(TelemetryPayload):
    """Telemetry piggybacked on a frame fetch; every field may be omitted."""

    device_identity: uuid.UUID = Field(default_factory=uuid.uuid4, alias="uuidNumber")
    boot_code: int = Field(default=0, alias="bootCode")
    battery_voltage: int = Field(default=0, alias="batVoltage")
    error_code: int = Field(default=0, alias="errorCode")


class TelemetryRecord(BaseModel):
    """Row of the `telemetry` table."""

    ts: int
    device_identity: uuid.UUID
    item_id: Optional[str] = None
    item_id_2: Optional[str] = None
    chip_id: Optional[int] = None
    boot_code: int = 0
    battery_voltage: int = 0
    error_code: int = 0
    return_code: Optional[int] = None
    bytes_written: Optional[int] = None
    remote_addrs: list[str] = Field(default_factory=list)

    @field_serializer("device_identity")
    def serialize_identity(self, value: uuid.UUID) -> str:
        """Serialize device identity as canonical UUID text."""
        return str(value)

    @classmethod
    def from_payload(
        cls,
        payload: TelemetryPayload,
        ts: int,
        remote_addr: str,
        item_refs: tuple[Optional[str], Optional[str]] = (None, None),
    ) -> "TelemetryRecord":
        """Build the record for one submission arriving from `remote_addr`."""
        return cls(
            ts=ts,
            device_identity=payload.device_identity,
            item_id=item_refs[0],
            item_id_2=item_refs[1],
            chip_id=payload.chip_id,
            boot_code=payload.boot_code,
            battery_voltage=payload.battery_voltage,
            error_code=payload.error_code,
            return_code=payload.return_code,
            bytes_written=payload.bytes_written,
            remote_addrs=[remote_addr],
        )
