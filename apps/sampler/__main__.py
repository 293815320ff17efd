from __future__ import annotations

import argparse
import asyncio
import logging

from shared.config.loader import load_coordinator_settings, load_sampler_settings

from apps.sampler.compose import SamplerApp
from apps.sampler.settings import SamplerSettings

LOG = logging.getLogger("sampler")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


async def _run_inproc(sampler_settings: SamplerSettings, profile: str | None) -> None:
    # no separate process to talk to: host the coordinator here
    from apps.coordinator.compose import CoordinatorApp

    coord_settings = load_coordinator_settings(profile=profile)
    coordinator = CoordinatorApp(coord_settings.model_copy(update={"ipc_impl": "inproc"}))
    sampler = SamplerApp(sampler_settings, upstream=coordinator.bridge_end)
    tasks = [asyncio.create_task(coordinator.run()), asyncio.create_task(sampler.run())]
    try:
        await asyncio.gather(*tasks)
    finally:
        for t in tasks:
            t.cancel()


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="rtcx-sampler")
    ap.add_argument("--profile", help="Config profile under configs/profiles (default: dev).")
    ap.add_argument("--log-level", help="Override the configured log level.")
    ap.add_argument("--page-url", help="Page the synthetic connections belong to.")
    ap.add_argument("--connections", type=int, help="Number of synthetic connections.")
    args = ap.parse_args(argv)

    logging.basicConfig(level=(args.log_level or "INFO").upper(), format=LOG_FORMAT)
    settings = load_sampler_settings(profile=args.profile)
    if not args.log_level:
        logging.getLogger().setLevel(settings.log_level.upper())
    overrides = {
        k: v for k, v in (("page_url", args.page_url), ("connections", args.connections)) if v is not None
    }
    if overrides:
        settings = settings.model_copy(update=overrides)

    LOG.info(
        "ipc_impl=%s page=%s connections=%d", settings.ipc_impl, settings.page_url, settings.connections
    )
    try:
        if settings.ipc_impl == "inproc":
            asyncio.run(_run_inproc(settings, args.profile))
        else:
            asyncio.run(SamplerApp(settings).run())
    except KeyboardInterrupt:
        LOG.info("interrupted; shutting down")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
