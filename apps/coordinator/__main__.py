from __future__ import annotations

import argparse
import asyncio
import logging

from shared.config.loader import load_coordinator_settings

from apps.coordinator.compose import CoordinatorApp
from apps.coordinator.settings import CoordinatorSettings

LOG = logging.getLogger("coordinator")

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _load_settings(profile: str | None) -> CoordinatorSettings:
    try:
        return load_coordinator_settings(profile=profile)
    except RuntimeError as ex:
        LOG.error("%s; continuing with built-in defaults", ex)
        return CoordinatorSettings()


async def _sweep_once(app: CoordinatorApp) -> list[str]:
    try:
        await app.coordinator.drain_relay(max_messages=10_000, timeout_ms=100)
        return await app.coordinator.sweep()
    finally:
        await app.aclose()


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="rtcx-coordinator")
    ap.add_argument("--profile", help="Config profile under configs/profiles (default: dev).")
    ap.add_argument("--log-level", help="Override the configured log level.")
    ap.add_argument("--tui", action="store_true", help="Run the Textual status console.")
    ap.add_argument("--sweep-now", action="store_true", help="Run one stale sweep and exit.")
    args = ap.parse_args(argv)

    logging.basicConfig(level=(args.log_level or "INFO").upper(), format=LOG_FORMAT)
    settings = _load_settings(args.profile)
    if not args.log_level:
        logging.getLogger().setLevel(settings.log_level.upper())

    app = CoordinatorApp(settings)
    opts = app.coordinator.options
    LOG.info(
        "ipc_impl=%s samples=%s options=%s destination=%s job=%s",
        settings.ipc_impl,
        settings.samples_bind,
        settings.options_bind,
        opts.url or "-",
        opts.job,
    )

    if args.sweep_now:
        retired = asyncio.run(_sweep_once(app))
        LOG.info("sweep retired %d connection(s)", len(retired))
        return 0

    if args.tui:
        from apps.coordinator.tui import ExporterTUI

        ExporterTUI(app).run()
        return 0

    try:
        asyncio.run(app.run())
    except KeyboardInterrupt:
        LOG.info("interrupted; shutting down")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
