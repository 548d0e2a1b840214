from __future__ import annotations

import json
from pathlib import Path
from threading import Lock
from typing import ClassVar, Dict, Generic, Optional, Type, TypeVar

from pydantic import BaseModel

M = TypeVar("M", bound=BaseModel)


class JsonTable(Generic[M]):
    """Lock-protected in-memory table of pydantic items, mirrored to a JSON file.

    Subclasses set ``model`` and hold ``self._lock`` around every access to
    ``self._items``; each mutation calls :meth:`_persist` under that lock.
    """

    model: ClassVar[Type[BaseModel]]

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._items: Dict[str, M] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def scan(self) -> list[M]:
        with self._lock:
            return [item.model_copy(deep=True) for item in self._items.values()]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {key: item.model_dump(mode="json") for key, item in self._items.items()}
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            data = json.loads(self.persistence_path.read_text() or "{}")
        except (OSError, json.JSONDecodeError):
            data = {}

        for key, payload in data.items():
            self._items[key] = self.model.model_validate(payload)
