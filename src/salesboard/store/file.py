"""Local unit store: a single JSON document rewritten on every mutation."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

from salesboard.exceptions import BoardStoreError

_logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class JsonFileUnitStore:
    """Unit store persisted as ``{"<unit id>": <sold>, ...}``.

    Reads and writes are whole-file and run in the loop's default executor,
    one operation at a time.  A write goes to a
    temporary sibling first and is moved into place with :func:`os.replace`,
    so an interrupted write leaves the previous document intact.  The last
    write timestamp is not stored.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, bool]:
        endpoint = str(self._path)
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise BoardStoreError(f"Cannot read {endpoint}: {exc}", endpoint=endpoint) from exc

        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise BoardStoreError(f"{endpoint} is not valid JSON: {exc}", endpoint=endpoint) from exc

        if not isinstance(data, dict):
            raise BoardStoreError(f"{endpoint} must hold a JSON object", endpoint=endpoint)
        bad = [key for key, value in data.items() if not isinstance(value, bool)]
        if bad:
            raise BoardStoreError(f"{endpoint} has non-boolean values for {bad[:5]}", endpoint=endpoint)
        return data

    def _write(self, units: dict[str, bool]) -> None:
        endpoint = str(self._path)
        directory = self._path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as handle:
                tmp_name = handle.name
                json.dump(units, handle, ensure_ascii=False, indent=2)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise BoardStoreError(f"Cannot write {endpoint}: {exc}", endpoint=endpoint) from exc
        _logger.debug("Wrote %d unit(s) to %s", len(units), endpoint)

    async def _run(self, func: Callable[..., _T], *args: Any) -> _T:
        # Whole-file read-modify-write cycles must not interleave.
        async with self._lock:
            return await asyncio.get_running_loop().run_in_executor(None, func, *args)

    def _apply(self, updates: Mapping[str, bool]) -> None:
        units = self._read()
        units.update(updates)
        self._write(units)

    def _clear(self) -> None:
        units = self._read()
        self._write(dict.fromkeys(units, False))

    async def load_all(self) -> dict[str, bool]:
        return await self._run(self._read)

    async def upsert(self, unit_id: str, sold: bool, timestamp: datetime) -> None:
        await self._run(self._apply, {unit_id: sold})

    async def upsert_many(self, unit_ids: Sequence[str], sold: bool, timestamp: datetime) -> None:
        await self._run(self._apply, dict.fromkeys(unit_ids, sold))

    async def bulk_replace(self, items: Iterable[tuple[str, bool]]) -> None:
        await self._run(self._write, dict(items))

    async def reset_all(self) -> None:
        await self._run(self._clear)

    async def close(self) -> None:
        return None
