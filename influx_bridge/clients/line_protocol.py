"""InfluxDB line-protocol points and the reusable batch encoder.

A line has the shape::

    measurement[,tag=value...] field=value[,field=value...] [timestamp]

Timestamps are epoch milliseconds; the write client always posts with
``precision=ms``.
"""

from __future__ import annotations

import io
import math
from collections.abc import Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Initial capacity of the encoder buffer (64 KiB).
BUFFER_ALLOC = 1024 * 64

FieldValue = bool | int | float | str


def _escape(value: str, characters: str) -> str:
    escaped = value.replace("\\", "\\\\")
    for char in characters:
        escaped = escaped.replace(char, f"\\{char}")
    return escaped


def escape_measurement(value: str) -> str:
    return _escape(value, ", ")


def escape_key(value: str) -> str:
    """Escape a tag key, tag value or field key."""
    return _escape(value, ",= ")


def format_field_value(value: FieldValue) -> str:
    # bool is checked first because it is a subclass of int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        return repr(value)
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def merge_tags(
    tags: Mapping[str, str], defaults: Mapping[str, str] | None
) -> dict[str, str]:
    """Return *tags* followed by every default tag whose key is not already set.

    Point tags win on collision; the result keeps the point's order first,
    then the defaults in their configured order.
    """
    merged = dict(tags)
    for key, value in (defaults or {}).items():
        merged.setdefault(key, value)
    return merged


class Point(BaseModel):
    """A single measurement observation."""

    model_config = ConfigDict(frozen=True)

    measurement: str = Field(..., min_length=1, description="Measurement name")
    tags: dict[str, str] = Field(default_factory=dict)
    fields: dict[str, FieldValue] = Field(..., description="At least one field")
    timestamp: int | None = Field(None, description="Epoch milliseconds")

    @field_validator("fields")
    @classmethod
    def _require_fields(cls, value: dict[str, FieldValue]) -> dict[str, FieldValue]:
        if not value:
            raise ValueError("a point requires at least one field")
        for key, field_value in value.items():
            # line protocol has no representation for NaN or +/-inf
            if isinstance(field_value, float) and not math.isfinite(field_value):
                raise ValueError(f"field {key!r} is not a finite number: {field_value}")
        return value

    def with_tags(self, tags: Mapping[str, str]) -> Point:
        """Return a copy carrying *tags* in addition to its own (own tags win)."""
        return self.model_copy(update={"tags": merge_tags(self.tags, tags)})

    def as_line_protocol(self, extra_tags: Mapping[str, str] | None = None) -> str:
        """Render the point as one line, without the trailing newline.

        *extra_tags* are merged for this rendering only; the point itself is
        left untouched.
        """
        parts = [escape_measurement(self.measurement)]
        for key, value in merge_tags(self.tags, extra_tags).items():
            if key and value:
                parts.append(f"{escape_key(key)}={escape_key(value)}")
        line = ",".join(parts)

        field_str = ",".join(
            f"{escape_key(key)}={format_field_value(value)}"
            for key, value in self.fields.items()
        )
        line = f"{line} {field_str}"
        if self.timestamp is not None:
            line = f"{line} {self.timestamp}"
        return line


class LineEncoder:
    """Serializes batches of points into one line-protocol payload.

    The encoder owns a single byte buffer, preallocated to *capacity* bytes,
    and a UTF-8 text writer on top of it, both reused for every call.
    ``encode`` rewinds the write position without shrinking the buffer,
    writes one newline-terminated line per point and returns a snapshot of
    the bytes between the start of the buffer and the write position, i.e.
    exactly what that call wrote.  Bytes left over from a longer earlier
    batch sit past the write position and are never part of a snapshot.
    The snapshot is what goes out on the wire, so the buffer is free again
    as soon as ``encode`` returns, even if the request carrying the previous
    payload is still in flight.

    Only one ``encode`` may run at a time.  Within an asyncio loop that is
    guaranteed because ``encode`` never awaits; threads sharing one encoder
    need their own synchronization.
    """

    def __init__(self, capacity: int = BUFFER_ALLOC) -> None:
        self._buffer = io.BytesIO(bytearray(capacity))
        self._writer = io.TextIOWrapper(self._buffer, encoding="utf-8", newline="\n")

    def encode(
        self,
        points: Iterable[Point],
        default_tags: Mapping[str, str] | None = None,
    ) -> bytes:
        writer = self._writer
        writer.seek(0)
        for point in points:
            writer.write(point.as_line_protocol(default_tags))
            writer.write("\n")
        writer.flush()
        size = self._buffer.tell()
        with self._buffer.getbuffer() as view:
            return bytes(view[:size])
