from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from apps.coordinator.settings import CoordinatorSettings
from apps.sampler.settings import SamplerSettings

ENV_PREFIX = "RTCX_"

# --- paths --------------------------------------------------------------------


def _repo_root() -> Path:
    """Heuristic: walk up from this file until we find pyproject.toml."""
    p = Path(__file__).resolve()
    for ancestor in [p, *p.parents]:
        if (ancestor / "pyproject.toml").exists():
            return ancestor
    return Path.cwd()


def _profiles_dir(env: Mapping[str, str]) -> Path:
    # RTCX_CONFIG_DIR points *at* profiles/
    override = env.get(f"{ENV_PREFIX}CONFIG_DIR")
    if override:
        return Path(override)
    return _repo_root() / "configs" / "profiles"


def _load_profile_table(env: Mapping[str, str], profile: str) -> dict[str, Any]:
    f = _profiles_dir(env) / f"{profile}.toml"
    if not f.exists():
        return {}
    text = f.read_text("utf-8")
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise RuntimeError(f"Failed to parse profile TOML: {f}") from e


# --- env overlay helpers ------------------------------------------------------


def _coerce_env_value(raw: str) -> Any:
    """
    Try to parse JSON first (so lists/dicts/numbers/bools work),
    then fall back to the original string.
    """
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def _collect_env_for(
    fields: set[str], env: Mapping[str, str], prefix: str = ENV_PREFIX
) -> dict[str, Any]:
    """
    Collect overrides like RTCX_IPC_IMPL, RTCX_CLEANUP_INTERVAL_MINUTES -> {'ipc_impl': ...}.
    Case-insensitive after the prefix; underscores only.
    """
    out: dict[str, Any] = {}
    upper_to_field = {f.upper(): f for f in fields}
    plen = len(prefix)
    for k, v in env.items():
        if not k.startswith(prefix):
            continue
        key = k[plen:].upper()
        if key in upper_to_field:
            out[upper_to_field[key]] = _coerce_env_value(v)
    return out


def _merge(base: dict[str, Any], table: Any) -> None:
    if not isinstance(table, dict):
        return
    for k, v in table.items():
        # nested tables (e.g. [coordinator.options]) overlay instead of replacing
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            base[k] = {**base[k], **v}
        else:
            base[k] = v


# --- public API ---------------------------------------------------------------


def load_coordinator_settings(
    env: Mapping[str, str] | None = None, profile: str | None = None
) -> CoordinatorSettings:
    """
    Merge defaults (CoordinatorSettings) <- TOML [coordinator] <- env RTCX_*.
    Env examples: RTCX_IPC_IMPL=zmq, RTCX_CLEANUP_INTERVAL_MINUTES=30,
    RTCX_OPTIONS={"url":"http://pushgateway:9091","gzip":true}
    """
    env = os.environ if env is None else env
    profile = (profile or env.get(f"{ENV_PREFIX}PROFILE") or "dev").strip()

    base = CoordinatorSettings().model_dump()

    toml_table = _load_profile_table(env, profile)
    _merge(base, toml_table.get("coordinator", {}))

    env_over = _collect_env_for(set(base.keys()), env)
    _merge(base, env_over)

    return CoordinatorSettings.model_validate(base)


def load_sampler_settings(
    env: Mapping[str, str] | None = None, profile: str | None = None
) -> SamplerSettings:
    """
    Merge defaults (SamplerSettings) <- TOML [sampler] <- env RTCX_*.
    Env examples: RTCX_PAGE_URL=https://meet.google.com/abc, RTCX_CONNECTIONS=3
    """
    env = os.environ if env is None else env
    profile = (profile or env.get(f"{ENV_PREFIX}PROFILE") or "dev").strip()

    base = SamplerSettings().model_dump()

    toml_table = _load_profile_table(env, profile)
    _merge(base, toml_table.get("sampler", {}))

    env_over = _collect_env_for(set(base.keys()), env)
    _merge(base, env_over)

    return SamplerSettings.model_validate(base)
