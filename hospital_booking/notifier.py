"""
Live notification channel for hospital staff.

`SubscriptionRegistry` keeps which WebSocket session watches which hospital;
`Notifier.publish` pushes an event to every session currently watching.
There is no replay: a session that joins after a publish never sees it.
"""
from __future__ import annotations

import asyncio
from typing import Any, Protocol

from .logging_config import get_logger

logger = get_logger(__name__)

WATCH = "watch"

APPOINTMENT_CREATED = "appointment_created"
APPOINTMENT_UPDATED = "appointment_updated"
APPOINTMENT_REMOVED = "appointment_removed"


class Session(Protocol):
    """Anything able to push a JSON message to one client (e.g. a Starlette WebSocket)."""

    async def send_json(self, data: Any) -> None: ...


class SubscriptionRegistry:
    """
    hospital_id -> live sessions, plus the reverse binding.

    A session watches at most one hospital: subscribing again moves it.
    All mutations go through one asyncio lock; `sessions_for` returns a
    snapshot so publishers never iterate a set that is being changed.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._by_hospital: dict[str, set[Session]] = {}
        self._hospital_of: dict[Session, str] = {}
        self._send_locks: dict[Session, asyncio.Lock] = {}

    async def subscribe(self, session: Session, hospital_id: str) -> None:
        async with self._lock:
            self._unbind(session)
            self._by_hospital.setdefault(hospital_id, set()).add(session)
            self._hospital_of[session] = hospital_id
            self._send_locks.setdefault(session, asyncio.Lock())
        logger.info("session_subscribed", hospital_id=hospital_id)

    async def unsubscribe(self, session: Session, hospital_id: str | None = None) -> None:
        """Drop the session; with `hospital_id`, only if it still watches that hospital."""
        async with self._lock:
            if hospital_id is not None and self._hospital_of.get(session) != hospital_id:
                return
            hospital_id = self._unbind(session)
            self._send_locks.pop(session, None)
        if hospital_id is not None:
            logger.info("session_unsubscribed", hospital_id=hospital_id)

    async def sessions_for(self, hospital_id: str) -> list[tuple[Session, asyncio.Lock]]:
        async with self._lock:
            return [(s, self._send_locks[s]) for s in self._by_hospital.get(hospital_id, ())]

    async def clear(self) -> None:
        async with self._lock:
            self._by_hospital.clear()
            self._hospital_of.clear()
            self._send_locks.clear()

    def _unbind(self, session: Session) -> str | None:
        hospital_id = self._hospital_of.pop(session, None)
        if hospital_id is not None:
            sessions = self._by_hospital.get(hospital_id)
            if sessions is not None:
                sessions.discard(session)
                if not sessions:
                    del self._by_hospital[hospital_id]
        return hospital_id


class Notifier:

    def __init__(self, registry: SubscriptionRegistry, send_timeout: float = 5.0) -> None:
        self.registry = registry
        self.send_timeout = send_timeout

    async def subscribe(self, session: Session, hospital_id: str) -> None:
        await self.registry.subscribe(session, hospital_id)

    async def unsubscribe(self, session: Session) -> None:
        await self.registry.unsubscribe(session)

    async def publish(self, hospital_id: str, event: str, payload: dict[str, Any]) -> int:
        """
        Deliver `event` to every session watching `hospital_id`.

        Sessions are served concurrently and independently: a failing or
        stuck one is dropped without delaying the others. Returns how many
        sessions got the message.
        """
        targets = await self.registry.sessions_for(hospital_id)
        if not targets:
            return 0

        message = {"event": WATCH, "data": {"type": event, "appointment": payload}}
        results = await asyncio.gather(
            *(self._send(session, lock, hospital_id, message) for session, lock in targets)
        )
        delivered = sum(results)
        logger.info("event_published", hospital_id=hospital_id, notify_event=event, sessions=len(targets), delivered=delivered)
        return delivered

    async def _send(self, session: Session, lock: asyncio.Lock, hospital_id: str, message: dict[str, Any]) -> bool:
        # one send at a time per session keeps events in publish order
        async with lock:
            try:
                await asyncio.wait_for(session.send_json(message), timeout=self.send_timeout)
                return True
            except Exception:
                logger.warning("event_delivery_failed", exc_info=True)
        # a session that re-subscribed elsewhere meanwhile keeps its new binding
        await self.registry.unsubscribe(session, hospital_id)
        return False
