"""Persistence of device telemetry, merged on the per-submission device identity."""

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterable
from typing import Optional, Union

from pydantic import TypeAdapter, ValidationError

from .exceptions import MalformedPayloadError, TelemetryWriteFailedError
from .store.models import TelemetryPayload, TelemetryRecord

logger = logging.getLogger(__name__)

_UPSERT = """
    INSERT INTO telemetry (
        ts, item_id, item_id_2, device_identity, chip_id, battery_voltage,
        boot_code, error_code, return_code, bytes_written, remote_addrs
    )
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT (device_identity) DO UPDATE SET
        error_code = excluded.error_code,
        return_code = excluded.return_code,
        bytes_written = excluded.bytes_written,
        remote_addrs = json_insert(telemetry.remote_addrs, '$[#]', ?)
"""

_payload_list = TypeAdapter(list[TelemetryPayload])


def parse_payloads(raw: Union[bytes, str]) -> list[TelemetryPayload]:
    """Decode the device's event log: a JSON list of documents, or one document.

    Raises:
        MalformedPayloadError: If the body is not JSON or a document fails validation
    """
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedPayloadError("Telemetry body is not valid JSON", details={"error": str(e)}) from e

    if isinstance(data, dict):
        data = [data]

    try:
        return _payload_list.validate_python(data)
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise MalformedPayloadError("Telemetry payload failed validation", errors) from e


class TelemetryRecorder:
    """Upserts telemetry records keyed on `device_identity`.

    The first submission inserts the full record. A resubmission only
    overwrites the status fields and appends its remote address; the item
    references attached at insert time are never changed.
    """

    def upsert(self, conn: sqlite3.Connection, record: TelemetryRecord) -> None:
        """Insert or merge one record.

        Raises:
            TelemetryWriteFailedError: On any store error
        """
        remote_addr = record.remote_addrs[-1] if record.remote_addrs else None
        try:
            conn.execute(
                _UPSERT,
                (
                    record.ts,
                    record.item_id,
                    record.item_id_2,
                    str(record.device_identity),
                    record.chip_id,
                    record.battery_voltage,
                    record.boot_code,
                    record.error_code,
                    record.return_code,
                    record.bytes_written,
                    json.dumps(record.remote_addrs),
                    remote_addr,
                ),
            )
        except sqlite3.Error as e:
            raise TelemetryWriteFailedError(
                "Unable to insert telemetry record",
                {"device_identity": str(record.device_identity), "error": str(e)},
            ) from e

        logger.debug(f"Telemetry recorded for {record.device_identity} from {remote_addr}")

    def record_many(self, conn: sqlite3.Connection, records: Iterable[TelemetryRecord]) -> int:
        """Upsert records in order, stopping at the first failure.

        Returns:
            Number of records written
        """
        written = 0
        for record in records:
            self.upsert(conn, record)
            written += 1
        return written

    def get(
        self, conn: sqlite3.Connection, device_identity: Union[uuid.UUID, str]
    ) -> Optional[TelemetryRecord]:
        row = conn.execute(
            """
            SELECT ts, item_id, item_id_2, device_identity, chip_id, battery_voltage,
                   boot_code, error_code, return_code, bytes_written, remote_addrs
            FROM telemetry WHERE device_identity = ?
            """,
            (str(device_identity),),
        ).fetchone()
        if row is None:
            return None

        return TelemetryRecord(
            ts=row["ts"],
            device_identity=row["device_identity"],
            item_id=row["item_id"],
            item_id_2=row["item_id_2"],
            chip_id=row["chip_id"],
            boot_code=row["boot_code"],
            battery_voltage=row["battery_voltage"],
            error_code=row["error_code"],
            return_code=row["return_code"],
            bytes_written=row["bytes_written"],
            remote_addrs=json.loads(row["remote_addrs"]),
        )
