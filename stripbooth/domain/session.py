# stripbooth/domain/session.py
import asyncio
import logging
import time
import uuid
from typing import Callable, Dict, List, Optional

from PIL import Image

from stripbooth.config.settings import settings
from stripbooth.delivery.schemas.body import Slot, TemplateDescriptor
from stripbooth.domain.errors import SessionNotFound, SessionNotReady, UnknownFilter
from stripbooth.domain.flattener import Flattener
from stripbooth.domain.sticker_layer import StickerLayer
from stripbooth.infrastructure.cv.filters import FILTERS

logger = logging.getLogger(__name__)

class EditingSession:
    """State owned by one caller between compose and finish.

    Every composing pass takes a generation token; a finished pass only commits
    its buffer when the token is still current and the session is alive.
    """

    def __init__(self, template: TemplateDescriptor, photo_sources: List[str], session_id: Optional[str] = None):
        self.id = session_id or uuid.uuid4().hex
        self.template = template
        self.photo_sources = list(photo_sources)
        self.stickers = StickerLayer()
        self.filter = "none"
        self.flattener = Flattener()

        self.base: Optional[Image.Image] = None
        self.mode: Optional[str] = None
        self.slots: List[Slot] = []

        self.generation = 0
        self.cancelled = False
        self.error: Optional[str] = None
        self.pending_fetch: Optional[asyncio.Future] = None
        self.compose_task: Optional[asyncio.Future] = None

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.error:
            return "failed"
        if self.compose_task is not None and not self.compose_task.done():
            return "composing"
        return "ready" if self.base is not None else "composing"

    def require_base(self) -> Image.Image:
        if self.base is None:
            raise SessionNotReady(f"session {self.id} belum punya komposit ({self.status})")
        return self.base

    def begin_pass(self) -> int:
        self.error = None
        self.generation += 1
        return self.generation

    def is_current(self, token: int) -> bool:
        return not self.cancelled and token == self.generation

    def commit_base(self, token: int, image: Image.Image, mode: str, slots: List[Slot]) -> bool:
        if not self.is_current(token):
            return False
        self.base = image
        self.mode = mode
        self.slots = list(slots)
        return True

    def set_filter(self, name: str) -> None:
        if name not in FILTERS:
            raise UnknownFilter(f"unknown filter '{name}'")
        self.filter = name

    def cancel(self) -> None:
        self.cancelled = True
        self.generation += 1
        if self.pending_fetch is not None and not self.pending_fetch.done():
            self.pending_fetch.cancel()
        self.pending_fetch = None

    def to_dict(self) -> Dict:
        return {
            "session_id": self.id,
            "status": self.status,
            "error": self.error,
            "template_id": self.template.id,
            "mode": self.mode,
            "size": list(self.base.size) if self.base is not None else None,
            "slots": [s.model_dump() for s in self.slots],
            "filter": self.filter,
            "stickers": self.stickers.to_list(),
            "selected_sticker_id": self.stickers.selected_id,
        }

class SessionStore:
    """In-memory sessions; any lookup counts as activity for the idle sweep."""

    def __init__(self, ttl_seconds: Optional[float] = settings.SESSION_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self._sessions: Dict[str, EditingSession] = {}
        self._last_seen: Dict[str, float] = {}
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def add(self, session: EditingSession) -> EditingSession:
        self._sessions[session.id] = session
        self._last_seen[session.id] = self.clock()
        return session

    def get(self, session_id: str) -> EditingSession:
        try:
            session = self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(f"session {session_id} tidak ditemukan") from None
        self._last_seen[session_id] = self.clock()
        return session

    def discard(self, session_id: str) -> EditingSession:
        session = self.get(session_id)
        session.cancel()
        self.forget(session_id)
        return session

    def forget(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)

    def sweep(self) -> List[str]:
        """Cancel and drop sessions idle for longer than ttl_seconds."""
        if not self.ttl_seconds:
            return []
        cutoff = self.clock() - self.ttl_seconds
        expired = [sid for sid, seen in self._last_seen.items() if seen < cutoff]
        for sid in expired:
            self._sessions[sid].cancel()
            self.forget(sid)
        if expired:
            logger.info(f"{len(expired)} session kedaluwarsa dibuang (idle > {self.ttl_seconds}s).")
        return expired

    def __len__(self) -> int:
        return len(self._sessions)
