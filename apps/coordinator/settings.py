from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from shared.contracts.v1.options import ExporterOptions


class CoordinatorSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RTCX_", extra="ignore")

    # choose transport impl
    ipc_impl: Literal["inproc", "zmq"] = "inproc"
    samples_bind: str = "tcp://127.0.0.1:7790"  # SUB: samples from bridges
    options_bind: str = "tcp://127.0.0.1:7791"  # PUB: options snapshots to bridges

    cleanup_interval_minutes: float = Field(default=60.0, gt=0)
    stale_after_s: float | None = None  # None -> max(2 * update_interval, 30)

    breaker_failure_threshold: int = Field(default=3, ge=1)
    breaker_cooldown_s: float = Field(default=30.0, ge=0)
    request_timeout_s: float = Field(default=10.0, gt=0)

    options_file: str | None = None  # JSON file backing the options store
    log_level: str = "INFO"

    # defaults for the persisted user options
    options: ExporterOptions = Field(default_factory=ExporterOptions)
