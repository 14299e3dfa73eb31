"""
Lifecycle event dispatch for the autonomous worker.

`WorkerEvents` is a plain subscriber list. `emit` calls every subscriber
synchronously, in subscription order, before returning to the code that
changed state. A subscriber that raises is logged and skipped so that one
bad listener cannot break the poll loop.

`RedisEventPublisher` is an optional subscriber that mirrors each event onto
a Redis stream for dashboards running in other processes.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Tuple

import redis

LOGGER = logging.getLogger(__name__)

WORKER_STARTED = "worker-started"
WORKER_STOPPED = "worker-stopped"
WORK_DISCOVERED = "work-discovered"
WORK_PICKED_UP = "work-picked-up"
WORK_CONFIRMED = "work-confirmed"
WORK_COMPLETED = "work-completed"
WORK_FAILED = "work-failed"
WORK_ESCALATED = "work-escalated"
BUDGET_EXHAUSTED = "budget-exhausted"
ERROR = "error"

Listener = Callable[..., Any]
AnyListener = Callable[[str, Dict[str, Any]], Any]


class WorkerEvents:
    def __init__(self) -> None:
        self._listeners: List[Tuple[str | None, Callable[..., Any]]] = []

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """
        Register `listener` for one event. It receives the event's keyword
        payload, e.g. ``listener(work=..., reason=...)``.

        Returns:
            A callable that removes the subscription.
        """
        entry = (event, listener)
        self._listeners.append(entry)
        return lambda: self._remove(entry)

    def subscribe_all(self, listener: AnyListener) -> Callable[[], None]:
        """Register `listener(event, payload)` for every event."""
        entry = (None, listener)
        self._listeners.append(entry)
        return lambda: self._remove(entry)

    def emit(self, event: str, **payload: Any) -> None:
        for name, listener in list(self._listeners):
            if name is not None and name != event:
                continue
            try:
                if name is None:
                    listener(event, payload)
                else:
                    listener(**payload)
            except Exception:  # noqa: BLE001 - subscribers must not break the worker
                LOGGER.exception("Event subscriber failed for %s", event)

    def _remove(self, entry: Tuple[str | None, Callable[..., Any]]) -> None:
        try:
            self._listeners.remove(entry)
        except ValueError:
            pass


def _json_dumps(payload: Dict[str, Any]) -> str:
    def _default(value: Any) -> Any:
        if hasattr(value, "model_dump"):
            return value.model_dump(mode="json")  # type: ignore[no-any-return]
        if isinstance(value, datetime):
            return value.isoformat()
        return str(value)

    return json.dumps(payload, default=_default, separators=(",", ":"))


class RedisEventPublisher:
    """Publishes worker lifecycle events to a Redis stream, best-effort."""

    def __init__(
        self,
        redis_url: str,
        *,
        stream_key: str,
        client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self.redis_url = redis_url
        self.stream_key = stream_key
        self._client_factory = client_factory
        self._client: Any | None = None

    def attach(self, events: WorkerEvents) -> Callable[[], None]:
        return events.subscribe_all(self)

    def __call__(self, event: str, payload: Dict[str, Any]) -> None:
        self.publish(event, payload)

    def publish(self, event: str, payload: Dict[str, Any]) -> None:
        client = self._ensure_client()
        if client is None:
            return
        record = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "payload": _json_dumps(payload),
        }
        try:
            client.xadd(self.stream_key, record)
        except redis.RedisError as exc:
            LOGGER.warning("Failed to publish worker event %s: %s", event, exc)

    def _ensure_client(self):
        if self._client is not None:
            return self._client
        if self._client_factory:
            self._client = self._client_factory()
            return self._client
        try:
            self._client = redis.Redis.from_url(self.redis_url, decode_responses=True)
        except (redis.RedisError, ValueError) as exc:
            LOGGER.warning("Unable to initialize Redis client for worker events: %s", exc)
            self._client = None
        return self._client


__all__ = [
    "WorkerEvents",
    "RedisEventPublisher",
    "WORKER_STARTED",
    "WORKER_STOPPED",
    "WORK_DISCOVERED",
    "WORK_PICKED_UP",
    "WORK_CONFIRMED",
    "WORK_COMPLETED",
    "WORK_FAILED",
    "WORK_ESCALATED",
    "BUDGET_EXHAUSTED",
    "ERROR",
]
