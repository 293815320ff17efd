from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SamplerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RTCX_", extra="ignore")

    # choose transport impl
    ipc_impl: Literal["inproc", "zmq"] = "inproc"
    samples_connect: str = "tcp://127.0.0.1:7790"
    options_connect: str = "tcp://127.0.0.1:7791"

    page_url: str = "https://meet.google.com/abc-defg-hij"

    # synthetic connections driven by the demo process
    connections: int = Field(default=2, ge=0)
    connection_lifetime_s: float | None = 120.0

    log_level: str = "INFO"
