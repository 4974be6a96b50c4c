import json
import logging
import os
import re
import threading
import zlib
from typing import Dict, Any, List, Optional

from .config import MEMORY_DIR, MEMORY_MAX_AGE_S, MEMORY_CONTEXT_MESSAGES
from .utils import now_ms

logger = logging.getLogger(__name__)

LOCK_STRIPES = 32
_SAFE_ID = re.compile(r"[^A-Za-z0-9_.-]")


def _session_file(memory_dir: str, session_id: str) -> str:
    return os.path.join(memory_dir, _SAFE_ID.sub("_", session_id)[:128] + ".json")


class ChatMemoryStore:
    """
    Per-session chat history: one JSON file per session id, plus an in-memory
    copy of recently active sessions.

    Writes for the same session id are serialized by a striped lock; the last
    write wins on disk. A single backend process is assumed.
    """

    def __init__(
        self,
        memory_dir: str = MEMORY_DIR,
        max_age_s: int = MEMORY_MAX_AGE_S,
        context_messages: int = MEMORY_CONTEXT_MESSAGES,
    ):
        self.memory_dir = memory_dir
        self.max_age_s = max_age_s
        self.context_messages = context_messages
        self._sessions: Dict[str, Dict[str, Any]] = {}
        self._stripes = [threading.Lock() for _ in range(LOCK_STRIPES)]
        self._index_lock = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.Lock:
        return self._stripes[zlib.crc32(session_id.encode("utf-8")) % LOCK_STRIPES]

    def _load(self, session_id: str) -> Dict[str, Any]:
        cached = self._sessions.get(session_id)
        if cached is not None:
            return cached
        path = _session_file(self.memory_dir, session_id)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict) and isinstance(data.get("messages"), list):
                return data
            logger.warning(f"[memory] ignoring malformed session file {path}")
        except FileNotFoundError:
            pass
        except (OSError, ValueError) as e:
            logger.warning(f"[memory] could not read {path}: {e}")
        return {"sessionId": session_id, "messages": [], "lastActivity": now_ms()}

    def _save(self, session_id: str, data: Dict[str, Any]) -> None:
        os.makedirs(self.memory_dir, exist_ok=True)
        path = _session_file(self.memory_dir, session_id)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, path)

    def append(self, session_id: str, role: str, content: str) -> None:
        with self._lock_for(session_id):
            data = self._load(session_id)
            ts = now_ms()
            data["messages"].append({"role": role, "content": content, "timestamp": ts})
            data["lastActivity"] = ts
            data["sessionId"] = session_id
            with self._index_lock:
                self._sessions[session_id] = data
            try:
                self._save(session_id, data)
            except OSError as e:
                logger.error(f"[memory] persist failed for {session_id}: {e}")

    def recent(self, session_id: str, limit: Optional[int] = None) -> List[Dict[str, str]]:
        """
        Last `limit` messages as LLM chat messages ({role, content}).
        """
        n = limit or self.context_messages
        with self._lock_for(session_id):
            data = self._load(session_id)
            msgs = list(data["messages"][-n:])
        return [{"role": m["role"], "content": m["content"]} for m in msgs]

    def sweep(self, now: Optional[int] = None) -> int:
        """
        Drop in-memory sessions idle longer than max_age_s. Files stay on disk.
        """
        now = now if now is not None else now_ms()
        cutoff = now - self.max_age_s * 1000
        with self._index_lock:
            stale = [sid for sid, d in self._sessions.items() if int(d.get("lastActivity") or 0) < cutoff]
            for sid in stale:
                del self._sessions[sid]
        if stale:
            logger.info(f"[memory] swept {len(stale)} idle session(s)")
        return len(stale)

    def stats(self) -> Dict[str, int]:
        with self._index_lock:
            sessions = list(self._sessions.values())
        return {
            "activeSessions": len(sessions),
            "totalMessages": sum(len(d["messages"]) for d in sessions),
        }
