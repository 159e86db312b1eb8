"""Remote unit store backed by a Supabase/PostgREST table."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

import aiohttp
from pydantic import ValidationError

from salesboard._constants import DELETE_ALL_SENTINEL
from salesboard._redact import redact_for_log
from salesboard.config import BoardConfig
from salesboard.exceptions import BoardStoreError
from salesboard.models.unit import UnitRow
from salesboard.store.base import chunked

_logger = logging.getLogger(__name__)

_PREFER_UPSERT = "resolution=merge-duplicates,return=minimal"
_PREFER_MINIMAL = "return=minimal"


class RestUnitStore:
    """Unit store talking to ``{supabase_url}/rest/v1/{table}``.

    Every call is an independent network round trip, so operations that
    span several requests (bulk replace, reset) are not atomic: a failure
    part way leaves the table partially updated and the caller must reload.
    """

    def __init__(
        self,
        config: BoardConfig,
        *,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        if not config.supabase_key:
            raise BoardStoreError("supabase_key is not configured")
        self._table = config.table
        self._url = f"{config.rest_base_url}/{config.table}"
        self._batch_size = config.batch_size
        self._headers: dict[str, str] = {
            "apikey": config.supabase_key,
            "Authorization": f"Bearer {config.supabase_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        self._external_session = http_session is not None
        self._http = http_session

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self._http

    async def close(self) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
        self._http = None

    async def _request(
        self,
        method: str,
        *,
        params: Mapping[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Send one request and return the decoded JSON body (``None`` if empty)."""
        headers = dict(self._headers)
        if prefer:
            headers["Prefer"] = prefer
        endpoint = f"{method} /{self._table}"

        _logger.debug(
            "%s %s params=%s headers=%s body=%s",
            method,
            self._url,
            params,
            redact_for_log(headers),
            redact_for_log(body),
        )

        try:
            async with self._session().request(
                method,
                self._url,
                params=params,
                json=body,
                headers=headers,
            ) as resp:
                text = await resp.text()
                if resp.status >= 300:
                    raise BoardStoreError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except BoardStoreError:
            raise
        except aiohttp.ClientError as exc:
            raise BoardStoreError(
                f"Request {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise BoardStoreError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc

    async def load_all(self) -> dict[str, bool]:
        payload = await self._request("GET", params={"select": "room_id,is_sold"})
        if payload is None:
            return {}
        if not isinstance(payload, list):
            raise BoardStoreError(f"Expected a row list from GET /{self._table}", endpoint=f"GET /{self._table}")
        try:
            rows = [UnitRow.model_validate(item) for item in payload]
        except ValidationError as exc:
            raise BoardStoreError(
                f"Malformed row from GET /{self._table}: {exc.error_count()} error(s)",
                endpoint=f"GET /{self._table}",
            ) from exc
        return {row.room_id: row.is_sold for row in rows}

    async def _upsert_rows(self, rows: Sequence[UnitRow]) -> None:
        for index, batch in enumerate(chunked(rows, self._batch_size)):
            try:
                await self._request(
                    "POST",
                    params={"on_conflict": "room_id"},
                    body=[row.to_payload() for row in batch],
                    prefer=_PREFER_UPSERT,
                )
            except BoardStoreError as exc:
                raise BoardStoreError(
                    f"Upsert batch {index + 1} of {len(rows)} row(s) failed: {exc}",
                    status_code=exc.status_code,
                    endpoint=exc.endpoint,
                ) from exc

    async def upsert(self, unit_id: str, sold: bool, timestamp: datetime) -> None:
        await self._upsert_rows([UnitRow(room_id=unit_id, is_sold=sold, updated_at=timestamp)])

    async def upsert_many(self, unit_ids: Sequence[str], sold: bool, timestamp: datetime) -> None:
        rows = [UnitRow(room_id=unit_id, is_sold=sold, updated_at=timestamp) for unit_id in unit_ids]
        await self._upsert_rows(rows)

    async def bulk_replace(self, items: Iterable[tuple[str, bool]]) -> None:
        rows = [UnitRow(room_id=unit_id, is_sold=sold) for unit_id, sold in items]

        # PostgREST refuses an unfiltered DELETE.
        await self._request(
            "DELETE",
            params={"room_id": f"neq.{DELETE_ALL_SENTINEL}"},
            prefer=_PREFER_MINIMAL,
        )

        written = 0
        for batch in chunked(rows, self._batch_size):
            try:
                await self._request(
                    "POST",
                    body=[row.to_payload() for row in batch],
                    prefer=_PREFER_MINIMAL,
                )
            except BoardStoreError as exc:
                raise BoardStoreError(
                    f"Bulk insert stopped after {written} of {len(rows)} row(s): {exc}",
                    status_code=exc.status_code,
                    endpoint=exc.endpoint,
                ) from exc
            written += len(batch)
        _logger.info("Replaced %s with %d row(s)", self._table, written)

    async def reset_all(self) -> None:
        unit_ids = list(await self.load_all())
        await self.upsert_many(unit_ids, False, datetime.now(UTC))
