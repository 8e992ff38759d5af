# status_watcher.py
"""
Periodic network status poster.

Runs in its own thread, independent of request handling: every interval it
builds the network report and posts it to a Discord webhook. stop() sets the
event the loop waits on, so shutdown does not wait out the interval.
"""
import logging
import threading
from typing import Callable, Optional

import requests

from bot_dispatch import Reply, ReplyKind, format_network_report, render_embed
from node_client import NodeClient

log = logging.getLogger(__name__)


class StatusWatcher:
    def __init__(
        self,
        node_factory: Callable[[], NodeClient],
        webhook_url: str,
        interval_sec: int = 3600,
        timeout: int = 15,
    ):
        self.node_factory = node_factory
        self.webhook_url = webhook_url
        self.interval_sec = interval_sec
        self.timeout = timeout
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> bool:
        report = format_network_report(self.node_factory)
        embed = render_embed(Reply(ReplyKind.INFO, "Network status", report))
        try:
            r = requests.post(self.webhook_url, json={"embeds": [embed]}, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("[watcher] webhook post failed: %s", e)
            return False
        if r.status_code >= 400:
            log.warning("[watcher] webhook http %s: %s", r.status_code, (r.text or "").strip()[:300])
            return False
        return True

    def _loop(self) -> None:
        log.info("[watcher] posting network status every %ss", self.interval_sec)
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                log.exception("[watcher] status round failed")
            self._stop.wait(self.interval_sec)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="status-watcher", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())
