from __future__ import annotations

from typing import Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ConnectionState = Literal[
    "new", "connecting", "connected", "disconnected", "failed", "closed", "unknown"
]
KNOWN_STATES: Final = frozenset(
    {"new", "connecting", "connected", "disconnected", "failed", "closed"}
)
TERMINAL_STATES: Final = frozenset({"closed", "failed"})

PEER_CONNECTION_TYPE: Final = "peer-connection"

# stats types a user may enable; "peer-connection" is always collected
STATS_TYPES: Final[tuple[str, ...]] = (
    "candidate-pair",
    "codec",
    "data-channel",
    "inbound-rtp",
    "local-candidate",
    "media-playout",
    "media-source",
    "outbound-rtp",
    "remote-candidate",
    "remote-inbound-rtp",
    "track",
    "transport",
)


class Sample(BaseModel):
    """One observation of one connection. Wire shape: {url, id, state, values}."""

    model_config = ConfigDict(frozen=True)

    url: str
    id: str
    state: ConnectionState = "unknown"
    values: list[Any] | None = None

    @field_validator("state", mode="before")
    @classmethod
    def _known_state(cls, v: Any) -> str:
        return v if isinstance(v, str) and v in KNOWN_STATES else "unknown"

    @field_validator("values", mode="before")
    @classmethod
    def _sequence_or_none(cls, v: Any) -> list[Any] | None:
        # malformed reports travel as "no values"; the formatter emits nothing
        return list(v) if isinstance(v, list | tuple) else None


class ConfigPush(BaseModel):
    """Bridge -> page configuration. Wire shape uses camelCase keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = ""
    enabled: bool = False
    update_interval: int = Field(default=2000, alias="updateInterval", ge=1)  # ms
    enabled_stats: list[str] = Field(default_factory=list, alias="enabledStats")

    def wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
