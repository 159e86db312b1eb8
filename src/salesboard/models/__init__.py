"""Typed models for the wire protocol and the durable store rows."""

from salesboard.models.messages import (
    ADMIN_ONLY,
    BatchImportMessage,
    ClientRole,
    FullUpdateMessage,
    ImportSuccessMessage,
    InboundMessage,
    InitMessage,
    MessageType,
    RegisterMessage,
    RejectReason,
    ResetAllMessage,
    ResetSuccessMessage,
    StatusUpdateMessage,
    UpdateFailedMessage,
    UpdateStatusMessage,
    UpdateSuccessMessage,
    parse_inbound,
)
from salesboard.models.unit import UnitRow

__all__ = [
    "ADMIN_ONLY",
    "BatchImportMessage",
    "ClientRole",
    "FullUpdateMessage",
    "ImportSuccessMessage",
    "InboundMessage",
    "InitMessage",
    "MessageType",
    "RegisterMessage",
    "RejectReason",
    "ResetAllMessage",
    "ResetSuccessMessage",
    "StatusUpdateMessage",
    "UnitRow",
    "UpdateFailedMessage",
    "UpdateStatusMessage",
    "UpdateSuccessMessage",
    "parse_inbound",
]
