"""Row model of the remote unit status table."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, StrictBool, field_serializer


class UnitRow(BaseModel):
    """One ``house_status`` row.

    Column names are snake_case on the wire, so no alias generator is used.
    ``updated_at`` is the only persisted field outside the synchronized
    state; it is omitted for bulk inserts where the table default applies.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    room_id: str
    is_sold: StrictBool = False
    updated_at: datetime | None = None

    @field_serializer("updated_at")
    def _iso_timestamp(self, value: datetime | None) -> str | None:
        return value.isoformat() if value is not None else None

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)
