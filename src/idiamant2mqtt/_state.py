"""Persisted token state.

The bridge keeps its OAuth tokens in a small JSON file so a restart
does not require the user to authorize again::

    {"access_token": "...", "refresh_token": "...", "expires_ts": 1767225600}

The file is read once at startup and rewritten on every token refresh.
Writes go to a temporary file in the same directory followed by
``os.replace`` so a crash mid-write never leaves a truncated file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from idiamant2mqtt._models import Token

logger = logging.getLogger(__name__)


class StateStore:
    """JSON-file backed token storage.

    Keys other than the three token fields are preserved on save.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._data: dict[str, Any] = {}

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Token:
        """Read the state file and return the stored token.

        A missing or unparseable file is logged and yields an empty
        :class:`Token`.
        """
        if not self._path.exists():
            logger.warning(
                "State file %s not found. No saved state data available.",
                self._path,
            )
            return Token()
        logger.debug("Reading latest data from state file: %s", self._path)
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error(
                "Saved state file %s exists but could not be parsed: %s",
                self._path,
                exc,
            )
            return Token()
        if not isinstance(data, dict):
            logger.error("Saved state file %s is not a JSON object", self._path)
            return Token()
        self._data = data
        return Token(
            access_token=str(data.get("access_token") or ""),
            refresh_token=str(data.get("refresh_token") or ""),
            expires_at=float(data.get("expires_ts") or 0),
        )

    def save(self, token: Token) -> None:
        """Atomically persist *token*.

        Raises:
            OSError: If the file cannot be written.
        """
        self._data.update(
            {
                "access_token": token.access_token,
                "refresh_token": token.refresh_token,
                "expires_ts": int(token.expires_at),
            },
        )
        directory = self._path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=directory,
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self._data, handle)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Saved updated state file: %s", self._path)
