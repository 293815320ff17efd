from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PeerConnectionPort(Protocol):
    """Whatever exposes a stats read and a state-change notification."""

    @property
    def connection_state(self) -> str: ...

    def get_stats(self) -> Iterable[Mapping[str, Any]]: ...

    def on_state_change(self, callback: Callable[[str], None]) -> None: ...
