"""
Shopper sessions

Each browser session owns its own cart, notification queue and checkout
workflow. Sessions live in memory only and are looked up by the opaque id the
client sends in the X-Session-Id header.
"""

import logging
import threading
import time
import uuid
from collections import OrderedDict, deque
from datetime import datetime
from typing import Callable, Deque, List, Literal, Optional

from pydantic import BaseModel, Field

import config
from cart import CartStore
from checkout import CheckoutWorkflow
from database import now_utc

logger = logging.getLogger(__name__)

Level = Literal["info", "success", "error"]


class Notification(BaseModel):
    message: str
    level: Level = "info"
    created_at: datetime = Field(default_factory=now_utc)


class Notifier:
    """Queue of user-facing messages, drained by the client."""

    def __init__(self, maxlen: int = 50):
        self._queue: Deque[Notification] = deque(maxlen=maxlen)

    def __call__(self, message: str, level: Level = "info") -> None:
        self._queue.append(Notification(message=message, level=level))

    def drain(self) -> List[Notification]:
        items = list(self._queue)
        self._queue.clear()
        return items

    def __len__(self) -> int:
        return len(self._queue)


class ShopperSession:
    def __init__(self, session_id: str):
        self.id = session_id
        self.notifications = Notifier()
        self.cart = CartStore(notify=self.notifications)
        self.checkout = CheckoutWorkflow(self.cart, notify=self.notifications)
        self.last_seen = time.monotonic()


class SessionRegistry:
    """Live shopper sessions, least recently used first.

    Sessions idle for longer than `idle_minutes` expire, and the oldest are
    evicted once `max_sessions` is reached.
    """

    def __init__(self, max_sessions: int = config.MAX_SESSIONS,
                 idle_minutes: float = config.SESSION_IDLE_MINUTES,
                 clock: Callable[[], float] = time.monotonic):
        self._sessions: "OrderedDict[str, ShopperSession]" = OrderedDict()
        self._lock = threading.Lock()
        self.max_sessions = max_sessions
        self.idle_seconds = idle_minutes * 60
        self._clock = clock

    def create(self, session_id: Optional[str] = None) -> ShopperSession:
        session = ShopperSession(session_id or uuid.uuid4().hex)
        with self._lock:
            self._prune()
            while len(self._sessions) >= self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info("Evicted shopper session %s", evicted)
            session.last_seen = self._clock()
            self._sessions[session.id] = session
        return session

    def get(self, session_id: str) -> Optional[ShopperSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            now = self._clock()
            if now - session.last_seen > self.idle_seconds:
                del self._sessions[session_id]
                return None
            session.last_seen = now
            self._sessions.move_to_end(session_id)
            return session

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def _prune(self) -> None:
        cutoff = self._clock() - self.idle_seconds
        while self._sessions:
            oldest = next(iter(self._sessions.values()))
            if oldest.last_seen >= cutoff:
                break
            self._sessions.popitem(last=False)

    def __len__(self) -> int:
        return len(self._sessions)
