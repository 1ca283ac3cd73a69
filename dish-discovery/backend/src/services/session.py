from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from services.discovery import DiscoveryFilters, DiscoveryResult
from services.fallback import FallbackSearchBroker


@dataclass
class SearchSession:
    """Per-user search state: the fallback broker and the last result."""

    broker: Optional[FallbackSearchBroker] = None
    last_filters: Optional[DiscoveryFilters] = None
    last_result: Optional[DiscoveryResult] = None

    @property
    def loading(self) -> bool:
        return self.last_result is None

    def close(self) -> None:
        if self.broker is not None:
            self.broker.close()


class SessionManager:
    """Simple in-memory session manager."""

    def __init__(
        self,
        broker_factory: Callable[[], Optional[FallbackSearchBroker]] = lambda: None,
        ttl_sec: int = 1800,
        max_sessions: int = 1000,
    ) -> None:
        self._sessions: Dict[str, SearchSession] = {}
        self._last_access: Dict[str, float] = {}
        self.broker_factory = broker_factory
        self.ttl_sec = ttl_sec
        self.max_sessions = max_sessions

    def get(self, session_id: str) -> Optional[SearchSession]:
        self._cleanup()
        if not session_id or session_id not in self._sessions:
            return None
        self._last_access[session_id] = time.time()
        return self._sessions[session_id]

    def get_or_create(self, session_id: str) -> SearchSession:
        session = self.get(session_id)
        if session is not None:
            return session
        if len(self._sessions) >= self.max_sessions:
            oldest = min(self._last_access, key=self._last_access.__getitem__)
            self.reset(oldest)
        session = SearchSession(broker=self.broker_factory())
        self._sessions[session_id] = session
        self._last_access[session_id] = time.time()
        return session

    def reset(self, session_id: str) -> None:
        """Drop a session and stop its pending fallback work."""
        if not session_id:
            return
        session = self._sessions.pop(session_id, None)
        self._last_access.pop(session_id, None)
        if session is not None:
            session.close()

    def clear(self) -> None:
        for sid in list(self._sessions):
            self.reset(sid)

    def __len__(self) -> int:
        return len(self._sessions)

    def _cleanup(self) -> None:
        """Remove expired sessions."""
        now = time.time()
        expired = [
            sid for sid, last in self._last_access.items()
            if now - last > self.ttl_sec
        ]
        for sid in expired:
            self.reset(sid)
