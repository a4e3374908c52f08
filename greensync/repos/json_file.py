"""JSON-file notification store, for keeping notification state across restarts."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from greensync.domain.errors import PersistenceFailure
from greensync.domain.models import AppNotification, EventRequest

logger = logging.getLogger(__name__)

_snapshot_adapter = TypeAdapter(dict[str, EventRequest])
_log_adapter = TypeAdapter(list[AppNotification])


class JsonNotificationStore:
    """Keeps the snapshot and notification log in one JSON document on disk.

    Layout: ``{"snapshot": {event_id: event, ...}, "notifications": [...]}``.
    Every save rewrites the whole file through a temporary sibling.
    """

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Could not read notification store %s: %s", self.path, exc)
            raise PersistenceFailure(f"cannot read {self.path}") from exc

    def _write(self, key: str, value) -> None:
        document = self._read()
        document[key] = value
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(document), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            logger.error("Could not write notification store %s: %s", self.path, exc)
            raise PersistenceFailure(f"cannot write {self.path}") from exc

    def load_snapshot(self) -> dict[str, EventRequest]:
        try:
            return _snapshot_adapter.validate_python(self._read().get("snapshot", {}))
        except ValidationError as exc:
            raise PersistenceFailure("corrupt event snapshot") from exc

    def save_snapshot(self, snapshot: dict[str, EventRequest]) -> None:
        self._write("snapshot", _snapshot_adapter.dump_python(snapshot, mode="json"))

    def load_log(self) -> list[AppNotification]:
        try:
            return _log_adapter.validate_python(self._read().get("notifications", []))
        except ValidationError as exc:
            raise PersistenceFailure("corrupt notification log") from exc

    def save_log(self, notifications: list[AppNotification]) -> None:
        self._write("notifications", _log_adapter.dump_python(notifications, mode="json"))

    def reset(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise PersistenceFailure(f"cannot remove {self.path}") from exc
