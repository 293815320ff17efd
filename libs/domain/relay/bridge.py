# libs/domain/relay/bridge.py
from __future__ import annotations

import logging
from typing import Final

from domain.origins import extract_origin, should_auto_enable
from ports.ipc import RelayPort
from shared.contracts.v1.relay_wire import (
    TOPIC_CONFIG,
    TOPIC_READY,
    TOPIC_SAMPLE,
    OptionsSnapshot,
    ReadySignal,
    normalize,
)
from shared.contracts.v1.stats import ConfigPush, Sample

LOG: Final = logging.getLogger("relay")


class RelayBridge:
    """The hop between one page and the coordinator.

    Samples go up unmodified; option snapshots come down and are turned
    into a page-specific ConfigPush (the enabled flag depends on the page
    origin). Nothing is buffered: a message that cannot be written is gone.
    """

    def __init__(self, page: RelayPort, upstream: RelayPort, page_url: str) -> None:
        self.page: Final = page
        self.upstream: Final = upstream
        self.page_origin = extract_origin(page_url) or page_url
        self.options: OptionsSnapshot | None = None
        self.forwarded = 0
        self.dropped = 0

    def config_for_page(self) -> ConfigPush | None:
        if self.options is None:
            return None
        opts = self.options
        return ConfigPush(
            url=opts.url,
            enabled=should_auto_enable(self.page_origin, opts.enabled_origins),
            update_interval=int(opts.update_interval * 1000),
            enabled_stats=list(opts.enabled_stats),
        )

    def push_config(self) -> bool:
        cfg = self.config_for_page()
        if cfg is None:
            return False
        return self.page.send(TOPIC_CONFIG, cfg.wire())

    def pump_once(self, timeout_ms: int = 0, max_messages: int = 100) -> int:
        """Move whatever is waiting in either direction. Returns messages handled."""
        handled = 0
        msg = self.page.recv(timeout_ms=timeout_ms)
        while msg is not None:
            self._from_page(msg)
            handled += 1
            if handled >= max_messages:
                break
            msg = self.page.recv(timeout_ms=0)
        for _ in range(max_messages):
            msg = self.upstream.recv(timeout_ms=0)
            if msg is None:
                break
            self._from_upstream(msg)
            handled += 1
        return handled

    def _from_page(self, msg: dict) -> None:
        decoded = normalize(msg)
        if isinstance(decoded, Sample):
            if self.upstream.send(TOPIC_SAMPLE, decoded.model_dump(mode="json")):
                self.forwarded += 1
            else:
                self.dropped += 1
                LOG.warning("relay to coordinator failed, sample %s dropped", decoded.id)
        elif isinstance(decoded, ReadySignal):
            LOG.info("page %s ready", self.page_origin)
            self.push_config()
            self.upstream.send(TOPIC_READY, {})
        else:
            LOG.debug("ignoring page message: %r", msg.get("topic"))

    def _from_upstream(self, msg: dict) -> None:
        decoded = normalize(msg)
        if isinstance(decoded, OptionsSnapshot):
            self.options = decoded
            self.push_config()
        else:
            LOG.debug("ignoring upstream message: %r", msg.get("topic"))
