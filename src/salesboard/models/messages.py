"""Pydantic models of the WebSocket message protocol.

Inbound frames are decoded with :func:`parse_inbound`: JSON decoding, a
discriminator check on ``type`` and then schema validation of the matching
model.  Every failure is raised as :class:`BoardProtocolError` carrying a
:class:`RejectReason`.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import Field, StrictBool, StrictStr, TypeAdapter, ValidationError, field_validator

from salesboard.exceptions import BoardProtocolError
from salesboard.models._base import BoardBaseModel


class ClientRole(StrEnum):
    ADMIN = "admin"
    DISPLAY = "display"


class MessageType(StrEnum):
    REGISTER = "register"
    UPDATE_STATUS = "update-status"
    BATCH_IMPORT = "batch-import"
    RESET_ALL = "reset-all"
    INIT = "init"
    STATUS_UPDATE = "status-update"
    FULL_UPDATE = "full-update"
    UPDATE_SUCCESS = "update-success"
    UPDATE_FAILED = "update-failed"
    IMPORT_SUCCESS = "import-success"
    RESET_SUCCESS = "reset-success"


class RejectReason(StrEnum):
    MALFORMED = "malformed"
    UNKNOWN_TYPE = "unknown-type"
    UNAUTHORIZED = "unauthorized"
    ROLE_CONFLICT = "role-conflict"
    UNKNOWN_UNIT = "unknown-unit"
    PERSISTENCE_FAILED = "persistence-failed"


#: Kinds only an admin connection may send.
ADMIN_ONLY: frozenset[MessageType] = frozenset(
    {MessageType.UPDATE_STATUS, MessageType.BATCH_IMPORT, MessageType.RESET_ALL}
)


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------


class RegisterMessage(BoardBaseModel):
    type: Literal["register"] = "register"
    client_type: ClientRole


class UpdateStatusMessage(BoardBaseModel):
    type: Literal["update-status"] = "update-status"
    room_id: StrictStr
    is_sold: StrictBool

    @field_validator("room_id")
    @classmethod
    def _room_id_non_empty(cls, value: str) -> str:
        room_id = value.strip()
        if not room_id:
            raise ValueError("roomId must be non-empty")
        return room_id


class BatchImportMessage(BoardBaseModel):
    type: Literal["batch-import"] = "batch-import"
    sold_rooms: list[StrictStr] | None = None
    sold_pw: list[StrictStr] | None = None

    def sold_ids(self) -> list[str]:
        """Residential then parking/storage ids, stripped and de-duplicated."""
        seen: dict[str, None] = {}
        for unit_id in (*(self.sold_rooms or ()), *(self.sold_pw or ())):
            stripped = unit_id.strip()
            if stripped:
                seen[stripped] = None
        return list(seen)


class ResetAllMessage(BoardBaseModel):
    type: Literal["reset-all"] = "reset-all"


InboundMessage = Annotated[
    RegisterMessage | UpdateStatusMessage | BatchImportMessage | ResetAllMessage,
    Field(discriminator="type"),
]

_INBOUND_ADAPTER: TypeAdapter[InboundMessage] = TypeAdapter(InboundMessage)
_INBOUND_TYPES: frozenset[str] = frozenset(
    {MessageType.REGISTER, MessageType.UPDATE_STATUS, MessageType.BATCH_IMPORT, MessageType.RESET_ALL}
)


def parse_inbound(raw: str | bytes) -> InboundMessage:
    """Decode one text frame into a typed inbound message."""
    try:
        data: Any = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as exc:
        raise BoardProtocolError(f"frame is not JSON: {exc}", reason=RejectReason.MALFORMED) from exc

    if not isinstance(data, dict):
        raise BoardProtocolError("frame is not a JSON object", reason=RejectReason.MALFORMED)

    kind = data.get("type")
    if not isinstance(kind, str) or kind not in _INBOUND_TYPES:
        raise BoardProtocolError(f"unknown message type {kind!r}", reason=RejectReason.UNKNOWN_TYPE)

    try:
        return _INBOUND_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise BoardProtocolError(
            f"invalid {kind} payload: {exc.error_count()} error(s)",
            reason=RejectReason.MALFORMED,
        ) from exc


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------


class InitMessage(BoardBaseModel):
    type: Literal["init"] = "init"
    data: dict[str, bool]


class StatusUpdateMessage(BoardBaseModel):
    type: Literal["status-update"] = "status-update"
    room_id: str
    is_sold: bool


class FullUpdateMessage(BoardBaseModel):
    type: Literal["full-update"] = "full-update"
    data: dict[str, bool]


class UpdateSuccessMessage(BoardBaseModel):
    type: Literal["update-success"] = "update-success"
    room_id: str
    is_sold: bool


class UpdateFailedMessage(BoardBaseModel):
    type: Literal["update-failed"] = "update-failed"
    room_id: str
    is_sold: bool
    reason: RejectReason


class ImportSuccessMessage(BoardBaseModel):
    type: Literal["import-success"] = "import-success"


class ResetSuccessMessage(BoardBaseModel):
    type: Literal["reset-success"] = "reset-success"
