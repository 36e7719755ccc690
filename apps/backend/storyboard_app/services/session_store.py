from typing import Dict, List, Optional
from dataclasses import dataclass, field
import os
import time

from storyboard_app.logger import console
from storyboard_app.services.region_selector import RegionSelectorSession

DEFAULT_SESSION_TTL = 30 * 60
DEFAULT_MAX_SESSIONS = 32


class SessionNotFound(KeyError):
    pass


@dataclass
class _Entry:
    session: RegionSelectorSession
    created_at: float
    updated_at: float = field(default_factory=time.time)


class SessionStore:
    """
    Open selection sessions. Each one holds a decoded source image, so idle
    sessions expire after `ttl` seconds and at most `max_sessions` are kept
    (least recently touched go first).
    """

    def __init__(self, ttl: Optional[float] = None, max_sessions: Optional[int] = None):
        self.sessions: Dict[str, _Entry] = {}
        self.ttl = ttl if ttl is not None else float(os.getenv("SESSION_TTL_SECONDS") or DEFAULT_SESSION_TTL)
        self.max_sessions = max_sessions if max_sessions is not None else int(
            os.getenv("MAX_SESSIONS") or DEFAULT_MAX_SESSIONS
        )

    def add(self, session: RegionSelectorSession) -> str:
        """Register an open selection session"""
        now = time.time()
        self._evict(now, room_for=1)
        self.sessions[session.id] = _Entry(session=session, created_at=now, updated_at=now)
        return session.id

    def get(self, session_id: str) -> RegionSelectorSession:
        """Get a session and mark it as touched"""
        entry = self.sessions.get(session_id)
        if entry is None:
            raise SessionNotFound(session_id)
        entry.updated_at = time.time()
        return entry.session

    def close(self, session_id: str) -> bool:
        entry = self.sessions.pop(session_id, None)
        if entry is None:
            return False
        entry.session.image.release()
        return True

    def recent(self, limit: int = 10) -> List[RegionSelectorSession]:
        """Most recently touched sessions first"""
        entries = sorted(self.sessions.values(), key=lambda e: e.updated_at, reverse=True)
        return [e.session for e in entries[:limit]]

    def clear(self) -> None:
        for session_id in list(self.sessions):
            self.close(session_id)

    def _evict(self, now: float, room_for: int = 0) -> None:
        expired = [sid for sid, e in self.sessions.items() if now - e.updated_at > self.ttl]
        overflow = len(self.sessions) - len(expired) + room_for - self.max_sessions
        if overflow > 0:
            alive = sorted(
                (e for sid, e in self.sessions.items() if sid not in expired),
                key=lambda e: e.updated_at,
            )
            expired.extend(e.session.id for e in alive[:overflow])
        for sid in expired:
            self.close(sid)
        if expired:
            console.log(f"[yellow]Evicted {len(expired)} region session(s)[/yellow]")


# Global instance
session_store = SessionStore()
