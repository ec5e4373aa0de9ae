"""Periodic background refresh of the vault index.

Queries already validate the index on every call. Refreshing on a timer
moves the re-parse cost of edits made in an editor off the query path.
"""

import logging
import threading
import time

from vault_mcp.indexer import RefreshStats, VaultIndex

logger = logging.getLogger(__name__)


class SyncManager:
    """Owns the "vault-sync" daemon thread.

    The thread waits one interval, calls run_once(), and repeats until
    stop() is called or the process exits.
    """

    def __init__(self, index: VaultIndex, interval: int):
        """
        Args:
            index: Index to keep fresh.
            interval: Seconds between refreshes. Must be > 0.
        """
        if interval <= 0:
            raise ValueError(f"Sync interval must be positive, got {interval}")

        self._index = index
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            logger.warning("Sync thread already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="vault-sync", daemon=True)
        self._thread.start()
        logger.info("Vault sync every %ds", self._interval)

    def stop(self) -> None:
        """Signal the thread and wait for it (at most one interval)."""
        if not self.running:
            return

        self._stop_event.set()
        self._thread.join(timeout=self._interval + 1)
        if self._thread.is_alive():
            logger.warning("Sync thread did not stop cleanly")
        else:
            logger.info("Vault sync stopped")
        self._thread = None

    def run_once(self) -> RefreshStats:
        """Refresh the index once and log what changed."""
        started = time.monotonic()
        snapshot = self._index.ensure_fresh()
        stats = self._index.last_refresh
        elapsed_ms = (time.monotonic() - started) * 1000

        if stats.changed:
            logger.info(
                "Auto-sync: %d added, %d updated, %d deleted, %d skipped "
                "(snapshot %s, %.0f ms)",
                stats.added,
                stats.updated,
                stats.deleted,
                stats.skipped,
                snapshot.generation,
                elapsed_ms,
            )
        else:
            logger.debug("Auto-sync: vault unchanged (%.0f ms)", elapsed_ms)
        return stats

    def _run(self) -> None:
        # wait() returns True once stop() sets the event
        while not self._stop_event.wait(timeout=self._interval):
            try:
                self.run_once()
            except Exception:
                self.failures += 1
                logger.exception("Auto-sync failed (%d so far)", self.failures)
