"""Sync daemon: keeps the selected city up to date on a fixed interval.

Runs one sync immediately, then one per interval. A failed sync is simply
retried on the next tick. SIGINT/SIGTERM abort an in-flight sync without
saving and stop the loop.

Usage:
    python -m haakweer daemon                 # every sync_interval_minutes
    python -m haakweer daemon --interval 600  # every 10 minutes
    python -m haakweer daemon --stop          # stop running daemon
"""

import asyncio
import contextlib
import json
import logging
import os
import signal
import sys
import time
from pathlib import Path

from haakweer.config.loader import config_hash
from haakweer.config.schema import AppConfig
from haakweer.models.common import utc_now, utc_now_iso
from haakweer.models.reporting import SyncReport
from haakweer.pipeline.sync_pipeline import SyncPipeline
from haakweer.reporting.formatters import format_status

logger = logging.getLogger(__name__)

PID_DIR = Path("data")
PID_FILE = PID_DIR / "daemon.pid"
STATE_FILE = PID_DIR / "daemon_state.json"


class SyncDaemon:
    """Runs the sync pipeline in a loop with signal-driven cancellation."""

    def __init__(
        self,
        config: AppConfig,
        archive_path: str | Path | None = None,
        interval: int | None = None,
    ):
        self.config = config
        self.archive_path = archive_path
        self.interval = interval or config.ops.sync_interval_minutes * 60
        self.log_dir = Path(config.ops.log_dir)
        self.max_log_files = config.ops.max_log_files
        self._stop: asyncio.Event | None = None
        self._consecutive_failures = 0
        self._total_syncs = 0
        self._total_successes = 0
        self._total_failures = 0
        self._started_at: str | None = None
        self._last_report: SyncReport | None = None

    def start(self) -> None:
        """Start the daemon loop. Blocks until stopped."""
        self._check_not_already_running()
        self._write_pid()
        self._started_at = utc_now_iso()

        logger.info("Daemon started, interval=%ds pid=%d", self.interval, os.getpid())
        print(f"Sync daemon started (pid {os.getpid()}, every {self.interval}s)")
        print(f"   Logs: {self.log_dir}/")
        print("   Stop: python -m haakweer daemon --stop")

        try:
            asyncio.run(self._main())
        except KeyboardInterrupt:
            logger.info("Daemon interrupted by keyboard")
        finally:
            self._cleanup()

    def request_stop(self) -> None:
        if self._stop is not None:
            self._stop.set()

    async def _main(self) -> None:
        self._stop = asyncio.Event()
        self._setup_signals()
        await self._loop()

    async def _loop(self) -> None:
        """Sync, then sleep until the next tick or a stop request."""
        assert self._stop is not None
        while not self._stop.is_set():
            sync_start = time.monotonic()
            await self._run_one_sync()
            self._save_state()

            remaining = max(0.0, self.interval - (time.monotonic() - sync_start))
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop.wait(), timeout=remaining)

    async def _run_one_sync(self) -> bool:
        """Execute a single sync. Returns True on success."""
        self._total_syncs += 1
        timestamp = utc_now().strftime("%Y%m%dT%H%M%SZ")

        self.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(self.log_dir / f"sync_{timestamp}.log")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root_logger = logging.getLogger()
        root_logger.addHandler(file_handler)

        try:
            logger.info("=== Sync #%d starting ===", self._total_syncs)
            pipeline = SyncPipeline(self.config, self.archive_path)
            report = await pipeline.run(cancel=self._stop)
            self._last_report = report

            if report.errors:
                self._total_failures += 1
                self._consecutive_failures += 1
                logger.error(
                    "Sync #%d failed (%d consecutive): %s",
                    self._total_syncs, self._consecutive_failures, report.errors,
                )
                return False

            self._total_successes += 1
            self._consecutive_failures = 0
            logger.info("Sync #%d: %s", self._total_syncs, format_status(report))
            return True

        except Exception:
            self._total_failures += 1
            self._consecutive_failures += 1
            logger.exception("Sync #%d crashed", self._total_syncs)
            return False

        finally:
            root_logger.removeHandler(file_handler)
            file_handler.close()
            self._rotate_logs()

    def _rotate_logs(self) -> None:
        """Keep only the most recent log files."""
        if not self.log_dir.exists():
            return
        logs = sorted(self.log_dir.glob("sync_*.log"))
        if len(logs) > self.max_log_files:
            for old in logs[: len(logs) - self.max_log_files]:
                old.unlink(missing_ok=True)

    def _setup_signals(self) -> None:
        """SIGTERM and SIGINT cancel the running sync and stop the loop."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._on_signal, sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, shutting down", sig.name)
        print(f"\nReceived {sig.name}, stopping...")
        self.request_stop()

    def _check_not_already_running(self) -> None:
        """Refuse to start while the PID file points at a live process."""
        pid = _read_pid()
        if pid is None:
            return
        if _is_alive(pid):
            print(f"Daemon already running (pid {pid}). Stop it first:")
            print("   haakweer daemon --stop")
            sys.exit(1)
        logger.info("Removing stale PID file for pid %d", pid)
        PID_FILE.unlink(missing_ok=True)

    def _write_pid(self) -> None:
        PID_DIR.mkdir(parents=True, exist_ok=True)
        PID_FILE.write_text(str(os.getpid()))

    def _save_state(self) -> None:
        """Persist daemon stats for status reporting."""
        state = {
            "pid": os.getpid(),
            "started_at": self._started_at,
            "interval": self.interval,
            "config_hash": config_hash(self.config),
            "total_syncs": self._total_syncs,
            "total_successes": self._total_successes,
            "total_failures": self._total_failures,
            "consecutive_failures": self._consecutive_failures,
            "last_sync": _summarize(self._last_report),
            "last_update": utc_now_iso(),
        }
        PID_DIR.mkdir(parents=True, exist_ok=True)
        STATE_FILE.write_text(json.dumps(state, indent=2))

    def _cleanup(self) -> None:
        PID_FILE.unlink(missing_ok=True)
        self._save_state()
        logger.info(
            "Daemon stopped: %d syncs (%d ok, %d failed)",
            self._total_syncs, self._total_successes, self._total_failures,
        )
        print(
            f"Daemon stopped: {self._total_syncs} syncs "
            f"({self._total_successes} ok, {self._total_failures} failed)"
        )


def _summarize(report: SyncReport | None) -> dict | None:
    if report is None:
        return None
    return {
        "city_id": report.city_id,
        "city_name": report.city_name,
        "up_to": report.up_to,
        "new_days": report.new_days,
        "persisted": report.persisted,
        "status": format_status(report),
    }


def _read_pid() -> int | None:
    """PID from the PID file, or None. A corrupt file is removed."""
    try:
        return int(PID_FILE.read_text().strip())
    except FileNotFoundError:
        return None
    except ValueError:
        logger.warning("Removing corrupt PID file %s", PID_FILE)
        PID_FILE.unlink(missing_ok=True)
        return None


def _is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else.
        return True
    return True


def stop_daemon(timeout: float = 30.0) -> int:
    """Send SIGTERM and wait for the daemon to exit, escalating to SIGKILL."""
    pid = _read_pid()
    if pid is None:
        print("No daemon running")
        return 1

    if not _is_alive(pid):
        print(f"Daemon not running (stale pid {pid}), cleaning up")
        PID_FILE.unlink(missing_ok=True)
        return 0

    print(f"Stopping daemon (pid {pid})...")
    os.kill(pid, signal.SIGTERM)

    # SIGTERM cancels the in-flight sync, so the process should exit quickly.
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not _is_alive(pid):
            print("Daemon stopped")
            PID_FILE.unlink(missing_ok=True)
            return 0
        time.sleep(0.5)

    print(f"Daemon still running after {timeout:.0f}s, sending SIGKILL")
    os.kill(pid, signal.SIGKILL)
    PID_FILE.unlink(missing_ok=True)
    return 0


def daemon_status() -> int:
    """Print the daemon's state file, including the last synced city."""
    try:
        state = json.loads(STATE_FILE.read_text())
    except FileNotFoundError:
        print("No daemon state found")
        pid = _read_pid()
        if pid is not None:
            print(f"  PID file points at {pid} ({'running' if _is_alive(pid) else 'stale'})")
        return 1

    pid = state.get("pid")
    running = isinstance(pid, int) and _is_alive(pid)
    print(
        f"Daemon {'running' if running else 'stopped'} "
        f"(pid {pid}, every {state.get('interval', '?')}s)"
    )
    print(f"  Started: {state.get('started_at', '?')}")
    print(
        f"  Syncs: {state.get('total_syncs', 0)} "
        f"({state.get('total_successes', 0)} ok, {state.get('total_failures', 0)} failed, "
        f"{state.get('consecutive_failures', 0)} in a row)"
    )

    last = state.get("last_sync")
    if last:
        city = last.get("city_name") or last.get("city_id") or "no city"
        print(f"  Last sync: {city} through {last.get('up_to') or 'n/a'}")
        print(f"    {last.get('status', '')}")
    else:
        print("  Last sync: none yet")

    print(f"  Updated: {state.get('last_update', '?')}")
    return 0
