"""
Frame serving pipeline.

One request runs acquire -> select -> compose -> record telemetry -> release,
synchronously, on the calling worker. Every failure is mapped to an outcome
status here so nothing escapes into the worker loop as an exception.
"""

import sqlite3
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import ValidationError

from .display.composer import FRAME_BYTES, FrameComposer
from .exceptions import (
    DataCorruptionError,
    EmptyAlbumError,
    MalformedPayloadError,
    PhotoFrameError,
    PoolExhaustedError,
    SelectionFailedError,
    TelemetryWriteFailedError,
)
from .rotation import RotationSelector
from .store.models import FrameTelemetry, Selection, TelemetryPayload, TelemetryRecord
from .store.pool import ResourcePool
from .telemetry import TelemetryRecorder
from .utils.logging import get_logger

logger = get_logger(__name__)


class OutcomeStatus(Enum):
    """Classified result of one request, carrying its HTTP status code."""

    OK = 200
    BAD_REQUEST = 400
    SERVER_ERROR = 500
    UNAVAILABLE = 503


@dataclass
class FrameRequest:
    """Authenticated "give me the next frame" intent."""

    remote_addr: str
    telemetry: Optional[TelemetryPayload] = None


@dataclass
class TelemetryRequest:
    """Authenticated telemetry upload carrying already-decoded payloads."""

    remote_addr: str
    payloads: list[TelemetryPayload] = field(default_factory=list)


@dataclass
class FrameOutcome:
    """What the pipeline hands back to the transport."""

    status: OutcomeStatus
    body: bytes = b""
    error: Optional[PhotoFrameError] = None
    selection: Optional[Selection] = None
    telemetry_recorded: bool = False

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @property
    def message(self) -> str:
        """Short response text for non-frame bodies."""
        return {
            OutcomeStatus.OK: "Ok",
            OutcomeStatus.BAD_REQUEST: "Bad request",
            OutcomeStatus.SERVER_ERROR: "Internal server error",
            OutcomeStatus.UNAVAILABLE: "Service temporarily unavailable",
        }[self.status]


def frame_telemetry_from_header(raw: Optional[str]) -> FrameTelemetry:
    """Decode the telemetry a device sends with a frame fetch.

    A missing or malformed header yields a default payload: telemetry never
    prevents a frame from being served.
    """
    if not raw:
        return FrameTelemetry()
    try:
        return FrameTelemetry.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed telemetry header: {e.error_count()} error(s)")
        return FrameTelemetry()


class FrameService:
    """Runs the frame and telemetry pipelines against a pooled store."""

    def __init__(
        self,
        pool: ResourcePool[sqlite3.Connection],
        selector: Optional[RotationSelector] = None,
        composer: Optional[FrameComposer] = None,
        recorder: Optional[TelemetryRecorder] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.pool = pool
        self.selector = selector or RotationSelector()
        self.composer = composer or FrameComposer()
        self.recorder = recorder or TelemetryRecorder()
        self.clock = clock

    def fetch_frame(self, request: FrameRequest) -> FrameOutcome:
        """Serve the next frame and record the device's telemetry alongside it."""
        try:
            conn = self.pool.acquire()
        except PoolExhaustedError as e:
            logger.warning(f"Frame request from {request.remote_addr} rejected: {e}")
            return FrameOutcome(OutcomeStatus.UNAVAILABLE, error=e)

        try:
            return self._fetch_frame(conn, request)
        except EmptyAlbumError as e:
            logger.error(f"No frame to serve: {e}")
            return FrameOutcome(OutcomeStatus.SERVER_ERROR, error=e)
        except SelectionFailedError as e:
            logger.error(f"Selection failed: {e}")
            return FrameOutcome(OutcomeStatus.SERVER_ERROR, error=e)
        except DataCorruptionError as e:
            logger.critical(f"Refusing to serve corrupt album data: {e}")
            return FrameOutcome(OutcomeStatus.SERVER_ERROR, error=e)
        except Exception as e:
            logger.exception("Unexpected failure while serving a frame")
            return FrameOutcome(OutcomeStatus.SERVER_ERROR, error=PhotoFrameError(str(e)))
        finally:
            self.pool.release(conn)

    def _fetch_frame(self, conn: sqlite3.Connection, request: FrameRequest) -> FrameOutcome:
        ts = int(self.clock())
        selection = self.selector.select_and_advance(conn, ts)
        frame = self.composer.compose(selection)
        if len(frame) != FRAME_BYTES:
            raise DataCorruptionError(
                "Composed frame has the wrong size", expected=FRAME_BYTES, actual=len(frame)
            )

        payload = request.telemetry or FrameTelemetry()
        record = TelemetryRecord.from_payload(payload, ts, request.remote_addr, selection.item_refs)
        recorded = False
        try:
            self.recorder.upsert(conn, record)
            recorded = True
        except TelemetryWriteFailedError as e:
            logger.error(f"Telemetry not recorded, serving frame anyway: {e}")

        logger.verbose(  # type: ignore[attr-defined]
            f"Serving frame {list(selection.item_refs)} to {request.remote_addr} "
            f"(battery {payload.battery_voltage} mV, boot code {payload.boot_code})"
        )
        return FrameOutcome(
            OutcomeStatus.OK, body=frame, selection=selection, telemetry_recorded=recorded
        )

    def record_telemetry(self, request: TelemetryRequest) -> FrameOutcome:
        """Persist a device's uploaded event log."""
        if not request.payloads:
            error = MalformedPayloadError("Telemetry upload holds no documents")
            return FrameOutcome(OutcomeStatus.BAD_REQUEST, error=error)

        try:
            conn = self.pool.acquire()
        except PoolExhaustedError as e:
            logger.warning(f"Telemetry from {request.remote_addr} rejected: {e}")
            return FrameOutcome(OutcomeStatus.UNAVAILABLE, error=e)

        try:
            ts = int(self.clock())
            written = self.recorder.record_many(
                conn,
                (TelemetryRecord.from_payload(p, ts, request.remote_addr) for p in request.payloads),
            )
        except TelemetryWriteFailedError as e:
            logger.error(f"Telemetry from {request.remote_addr} not recorded: {e}")
            return FrameOutcome(OutcomeStatus.SERVER_ERROR, error=e)
        except Exception as e:
            logger.exception("Unexpected failure while recording telemetry")
            return FrameOutcome(OutcomeStatus.SERVER_ERROR, error=PhotoFrameError(str(e)))
        finally:
            self.pool.release(conn)

        logger.verbose(  # type: ignore[attr-defined]
            f"{written} telemetry record(s) from {request.remote_addr}"
        )
        return FrameOutcome(OutcomeStatus.OK, body=b"Ok", telemetry_recorded=True)
