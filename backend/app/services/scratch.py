"""Local scratch storage: generated user id, last location, API key fallback.

A small JSON file standing in for browser localStorage. It is read once on
construction and written through on every change.
"""

import json
import logging
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

USER_ID_KEY = "user_id"
LOCATION_KEY = "location"
API_KEY_KEY = "api_key"


def new_user_id() -> str:
    return f"user_{int(time.time() * 1000)}"


class ScratchStore:
    """Key/value scratch file with a stable per-install user id."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._data: dict[str, str] = self._load()
        if not self._data.get(USER_ID_KEY):
            self.set(USER_ID_KEY, new_user_id())
            logger.info("Generated user id %s", self._data[USER_ID_KEY])

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable scratch file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _flush(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._data, indent=2))
        except OSError as e:
            # In-memory values stay authoritative for this process
            logger.error("Failed to write scratch file %s: %s", self.path, e)

    @property
    def user_id(self) -> str:
        return self._data[USER_ID_KEY]

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: Optional[str]) -> None:
        if value is None or value == "":
            self._data.pop(key, None)
        else:
            self._data[key] = value
        self._flush()
