from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Final, Literal

from pydantic import BaseModel, Field, ValidationError

from .stats import ConfigPush, Sample

LOG: Final = logging.getLogger("relay.wire")

SCHEMA_V1: Literal[1] = 1

TOPIC_SAMPLE: Final = "sample"
TOPIC_READY: Final = "ready"
TOPIC_OPTIONS: Final = "options"
TOPIC_CONFIG: Final = "config"


def utc_now() -> datetime:
    return datetime.now(UTC)


class RelayEnvelope(BaseModel):
    schema_version: Literal[1] = Field(default=SCHEMA_V1)
    msg_id: str
    ts: datetime = Field(default_factory=utc_now)
    topic: str
    data: dict


class ReadySignal(BaseModel):
    """Page-side producer is up and wants the current configuration."""


class OptionsSnapshot(BaseModel):
    """Coordinator -> bridge: credential-free subset of the user options."""

    url: str = ""
    update_interval: float = 2
    enabled_origins: dict[str, bool] = Field(default_factory=dict)
    enabled_stats: list[str] = Field(default_factory=list)


RelayMessage = Sample | ConfigPush | OptionsSnapshot | ReadySignal

# historical page message names, both generations
_STATS_KEYS: Final = frozenset(
    {
        "webrtc-internal-exporter:peer-connection-stats",
        "webrtc-exporter-peer-connection-stats",
        "webrtc_stats_payload",
    }
)
_OPTIONS_KEYS: Final = frozenset({"webrtc-internal-exporter:options", "webrtc-exporter-options"})
_READY_KEYS: Final = frozenset({"webrtc-internal-exporter:ready", "webrtc-exporter-ready"})


def _legacy(raw: Mapping[str, Any]) -> RelayMessage | None:
    # "type" is the newer key; it wins when a message carries both
    kind = raw.get("type") or raw.get("event")
    if kind in _STATS_KEYS:
        body = raw.get("data") if isinstance(raw.get("data"), Mapping) else raw
        return Sample.model_validate(
            {k: body.get(k) for k in ("url", "id", "state", "values") if k in body}
        )
    if kind in _OPTIONS_KEYS:
        return ConfigPush.model_validate(raw.get("options") or {})
    if kind in _READY_KEYS:
        return ReadySignal()
    return None


def normalize(msg: Mapping[str, Any] | None) -> RelayMessage | None:
    """Decode anything a relay endpoint hands over into one canonical model.

    Canonical messages carry a topic; legacy page messages carry an
    `event` or `type` key instead. Unknown or invalid shapes yield None.
    """
    if not msg:
        return None
    topic = msg.get("topic")
    data = msg.get("data")
    try:
        if topic is None:
            wrapped = "type" not in msg and "event" not in msg and isinstance(data, Mapping)
            return _legacy(data if wrapped else msg)
        if not isinstance(data, Mapping):
            return None
        if topic == TOPIC_SAMPLE:
            return Sample.model_validate(data)
        if topic == TOPIC_CONFIG:
            return ConfigPush.model_validate(data)
        if topic == TOPIC_OPTIONS:
            return OptionsSnapshot.model_validate(data)
        if topic == TOPIC_READY:
            return ReadySignal()
    except ValidationError as ex:
        LOG.debug("dropping invalid %s message: %s", topic or "legacy", ex.errors())
        return None
    LOG.debug("dropping message with unknown topic %r", topic)
    return None
