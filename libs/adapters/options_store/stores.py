from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Final

from ports.options import ChangeListener, OptionsStorePort

LOG: Final = logging.getLogger("options.store")


class OptionsStoreError(RuntimeError):
    """The backing storage could not be read or written."""


class MemoryOptionsStore(OptionsStorePort):
    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})
        self._listeners: list[ChangeListener] = []

    def get(self) -> dict[str, Any]:
        return dict(self._values)

    def set(self, values: Mapping[str, Any]) -> None:
        changed = {k: v for k, v in values.items() if k not in self._values or self._values[k] != v}
        if not changed:
            return
        self._persist({**self._values, **changed})
        self._values.update(changed)
        self._notify(changed)

    def _persist(self, values: dict[str, Any]) -> None:
        pass

    def _notify(self, changed: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(dict(changed))
            except Exception:
                LOG.exception("options listener failed")

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


class JsonFileOptionsStore(MemoryOptionsStore):
    """Options in one JSON object on disk, replaced atomically on every write."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as ex:
            raise OptionsStoreError(f"cannot read options from {self.path}: {ex}") from ex
        if not isinstance(data, dict):
            raise OptionsStoreError(f"{self.path} does not hold a JSON object")
        return data

    def _persist(self, values: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        except OSError as ex:
            raise OptionsStoreError(f"cannot write options to {self.path}: {ex}") from ex
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(values, fh, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as ex:
            Path(tmp).unlink(missing_ok=True)
            raise OptionsStoreError(f"cannot write options to {self.path}: {ex}") from ex
