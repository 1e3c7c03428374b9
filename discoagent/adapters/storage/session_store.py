"""JSON file-based session store — implements SessionStorePort."""

import json
import logging
import tempfile
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class JsonSessionStore:
    """Channel key → assistant session token, persisted as one JSON object.

    Loaded once at startup and rewritten wholesale after every mutation.
    """

    def __init__(self, path: str = "claude-sessions.json"):
        self._path = Path(path)
        self._sessions: Dict[str, str] = {}

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        if not self._path.exists():
            self._sessions = {}
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error(f"Error loading sessions from {self._path}: {e}")
            self._sessions = {}
            return
        if not isinstance(raw, dict):
            logger.error(f"Ignoring session file {self._path}: expected a JSON object")
            self._sessions = {}
            return
        self._sessions = {str(k): str(v) for k, v in raw.items() if v}
        logger.info(f"Loaded {len(self._sessions)} session(s) from {self._path}")

    def get(self, channel_key: str) -> Optional[str]:
        return self._sessions.get(channel_key)

    def set(self, channel_key: str, token: str) -> None:
        if self._sessions.get(channel_key) == token:
            return
        self._sessions[channel_key] = token
        self.flush()
        logger.info(f"Updated session for {channel_key}: {token}")

    def invalidate(self, channel_key: str) -> None:
        if self._sessions.pop(channel_key, None) is not None:
            self.flush()
            logger.warning(f"Cleared invalid session for {channel_key}")

    def flush(self) -> None:
        """Rewrite the whole session file; readers never see a partial file."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self._path.parent,
            prefix=f".{self._path.name}.",
            delete=False,
        )
        staging_path = Path(staging.name)
        try:
            with staging:
                json.dump(self._sessions, staging, ensure_ascii=False, indent=2, sort_keys=True)
            staging_path.replace(self._path)
        finally:
            staging_path.unlink(missing_ok=True)
        logger.debug(f"Saved {len(self._sessions)} session(s) to {self._path}")

    def as_dict(self) -> Dict[str, str]:
        return dict(self._sessions)
