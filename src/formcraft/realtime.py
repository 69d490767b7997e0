"""Submission change notifications.

``SubmissionFeed`` is an explicitly owned connection object: whoever creates
it decides when it connects and disconnects, and passes it to the components
that need change events. Events are ``INSERT``, ``UPDATE`` and ``DELETE``
with the affected submission record.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

EVENT_TYPES = {"INSERT", "UPDATE", "DELETE"}

Callback = Callable[[str, dict[str, Any]], None]


class SubmissionFeed:
    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callback]] = {}
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def connect(self) -> None:
        self._connected = True
        logger.debug("Submission feed connected")

    def disconnect(self) -> None:
        self._connected = False
        self._subscribers.clear()
        logger.debug("Submission feed disconnected")

    def subscribe(self, form_id: str, callback: Callback) -> Callable[[], None]:
        if not form_id:
            raise ValueError("form_id is required to subscribe")
        self._subscribers.setdefault(form_id, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(form_id, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(form_id, None)

        return unsubscribe

    def publish(self, event: str, record: dict[str, Any]) -> None:
        if event not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event}")
        if not self._connected:
            logger.debug("Feed disconnected, dropping %s for %s", event, record.get("id"))
            return
        form_id = record.get("form_id")
        for callback in list(self._subscribers.get(form_id, [])):
            try:
                callback(event, record)
            except Exception:
                logger.exception("Submission feed subscriber failed: %s", event)


class SubmissionList:
    """Newest-first mirror of a form's submissions kept current by feed events."""

    def __init__(self, form_id: str, initial: list[dict[str, Any]] | None = None) -> None:
        self.form_id = form_id
        self.items: list[dict[str, Any]] = list(initial or [])

    def attach(self, feed: SubmissionFeed) -> Callable[[], None]:
        return feed.subscribe(self.form_id, self.handle)

    def handle(self, event: str, record: dict[str, Any]) -> None:
        if record.get("form_id") != self.form_id:
            return
        if event == "INSERT":
            if any(item["id"] == record["id"] for item in self.items):
                return
            self.items.insert(0, record)
        elif event == "UPDATE":
            self.items = [record if item["id"] == record["id"] else item for item in self.items]
        elif event == "DELETE":
            self.items = [item for item in self.items if item["id"] != record["id"]]
