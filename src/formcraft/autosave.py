"""Debounced persistence of form documents.

``AutoSaver`` turns a burst of document mutations into as few writes as
possible. It runs on the asyncio event loop and is driven by three calls:
``attach`` (initial load, never saved), ``on_mutation`` (arms the debounce
timer) and ``save_now`` (manual save, cancels the timer).

Status moves ``idle -> saving -> saved -> idle``; a failed write moves to
``error`` and stays there until the next mutation cycle saves successfully.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

import orjson

from formcraft.config import Settings
from formcraft.errors import FormcraftError, PersistenceFailure
from formcraft.utils import now_utc

logger = logging.getLogger(__name__)

SaveFunc = Callable[[list[dict[str, Any]]], Awaitable[None]]
Listener = Callable[["SaveStatus"], None]


class SaveStatus(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


class AutoSaver:
    def __init__(
        self,
        save: SaveFunc,
        *,
        debounce_ms: int = 1500,
        saved_reset_ms: int = 2000,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._save = save
        self._debounce = debounce_ms / 1000
        self._saved_reset = saved_reset_ms / 1000
        self._loop = loop
        self._listeners: list[Listener] = []

        self.status = SaveStatus.IDLE
        self.error: BaseException | None = None
        self.last_saved_at: datetime | None = None
        self.save_count = 0

        self._persisted: bytes | None = None
        self._latest: bytes | None = None
        self._latest_document: list[dict[str, Any]] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._reset_timer: asyncio.TimerHandle | None = None
        self._in_flight: asyncio.Task | None = None
        self._rearm_after_flight = False

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    @property
    def pending(self) -> bool:
        return self._timer is not None

    @property
    def saving(self) -> bool:
        return self._in_flight is not None

    @property
    def dirty(self) -> bool:
        return self._latest != self._persisted

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def attach(self, document: list[dict[str, Any]]) -> None:
        encoded = orjson.dumps(document)
        self._persisted = encoded
        self._latest = encoded
        self._latest_document = document

    def on_mutation(self, document: list[dict[str, Any]]) -> None:
        if self._persisted is None:
            # First document seen is the loaded one.
            self.attach(document)
            return
        self._latest = orjson.dumps(document)
        self._latest_document = document
        if self._in_flight is not None:
            self._cancel_timer()
            self._rearm_after_flight = True
            return
        self._arm()

    async def save_now(self) -> None:
        self._cancel_timer()
        while self._in_flight is not None:
            await self._in_flight
        self._cancel_timer()
        self._rearm_after_flight = False
        self._start()
        if self._in_flight is not None:
            await self._in_flight

    async def flush(self) -> None:
        """Wait for a pending or in-flight save to settle."""
        if self._timer is not None:
            await self.save_now()
            return
        while self._in_flight is not None:
            await self._in_flight

    def close(self) -> None:
        self._cancel_timer()
        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None
        self._listeners.clear()

    def _arm(self) -> None:
        self._cancel_timer()
        self._timer = self.loop.call_later(self._debounce, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        self._start()

    def _start(self) -> None:
        if self._in_flight is not None:
            return
        self._in_flight = self.loop.create_task(self._run())

    async def _run(self) -> None:
        try:
            await self._perform()
        finally:
            self._in_flight = None
            if self._rearm_after_flight:
                self._rearm_after_flight = False
                self._arm()

    async def _perform(self) -> None:
        if self._latest is None or self._latest == self._persisted:
            return
        content = self._latest
        document = self._latest_document or []
        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None
        self.error = None
        self._set_status(SaveStatus.SAVING)
        try:
            await self._save(document)
        except Exception as exc:
            logger.exception("Auto-save failed")
            self.error = exc
            self._set_status(SaveStatus.ERROR)
            return
        self._persisted = content
        self.last_saved_at = now_utc()
        self.save_count += 1
        self._set_status(SaveStatus.SAVED)
        self._reset_timer = self.loop.call_later(self._saved_reset, self._reset_to_idle)

    def _reset_to_idle(self) -> None:
        self._reset_timer = None
        if self.status == SaveStatus.SAVED:
            self._set_status(SaveStatus.IDLE)

    def _set_status(self, status: SaveStatus) -> None:
        if status == self.status:
            return
        self.status = status
        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception:
                logger.exception("Auto-save status listener failed: %s", status.value)


def storage_saver(storage: Any, form_id: str) -> SaveFunc:
    """Adapt a form repository into an ``AutoSaver`` save function."""

    async def save(document: list[dict[str, Any]]) -> None:
        try:
            storage.forms.save_content(form_id, document)
        except FormcraftError:
            raise
        except Exception as exc:
            raise PersistenceFailure(f"Failed to save form {form_id}") from exc
        logger.info("Saved form content: %s", form_id)

    return save


def autosaver_for(storage: Any, form_id: str, settings: Settings) -> AutoSaver:
    """Build an ``AutoSaver`` for one form using the configured timings."""
    return AutoSaver(
        storage_saver(storage, form_id),
        debounce_ms=settings.autosave_debounce_ms,
        saved_reset_ms=settings.autosave_saved_reset_ms,
    )
