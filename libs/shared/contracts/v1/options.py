from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from .stats import STATS_TYPES

DEFAULT_QUALITY_LIMITATION_REASONS: dict[str, int] = {
    "none": 0,
    "bandwidth": 1,
    "cpu": 2,
    "other": 3,
}


class ExporterOptions(BaseModel):
    """User options persisted in the options store."""

    url: str = "http://localhost:9091"
    username: str = ""
    password: str = ""
    update_interval: float = Field(default=2, ge=1, le=30)  # seconds
    gzip: bool = False
    job: str = "webrtc-internals-exporter"
    agent_id: str = ""
    enabled_origins: dict[str, bool] = Field(default_factory=dict)
    enabled_stats: list[str] = Field(
        default_factory=lambda: ["inbound-rtp", "remote-inbound-rtp", "outbound-rtp"]
    )
    quality_limitation_reasons: dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_QUALITY_LIMITATION_REASONS)
    )

    @field_validator("url")
    @classmethod
    def _http_url(cls, v: str) -> str:
        v = v.strip()
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("URL must use http or https protocol")
        return v

    @field_validator("enabled_stats")
    @classmethod
    def _known_types(cls, v: list[str]) -> list[str]:
        unknown = [t for t in v if t not in STATS_TYPES]
        if unknown:
            raise ValueError(f"unknown stats types: {unknown}")
        return v

    def snapshot(self) -> dict[str, Any]:
        """Credential-free view published to bridges."""
        return self.model_dump(include={"url", "update_interval", "enabled_origins", "enabled_stats"})
