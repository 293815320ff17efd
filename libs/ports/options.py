from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

ChangeListener = Callable[[dict[str, Any]], None]


class OptionsStorePort(ABC):
    """Persisted key/value user options."""

    @abstractmethod
    def get(self) -> dict[str, Any]: ...

    @abstractmethod
    def set(self, values: Mapping[str, Any]) -> None: ...

    @abstractmethod
    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Listener receives only the keys whose value changed."""
