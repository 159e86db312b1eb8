"""Base model for the JSON wire protocol.

Every wire message inherits from :class:`BoardBaseModel` which provides:

* ``alias_generator=to_camel`` so the front-end's camelCase keys
  (``roomId``, ``isSold``, ``clientType``) map to snake_case fields.
* ``populate_by_name`` so code and tests can construct messages with
  field names.
* :meth:`BoardBaseModel.to_wire` which serializes with the camelCase
  aliases the browsers expect.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BoardBaseModel(BaseModel):
    """Base for inbound and outbound wire messages."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> str:
        """JSON text frame using the camelCase wire names."""
        return self.model_dump_json(by_alias=True, exclude_none=True)
