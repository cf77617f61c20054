"""Ephemeral forked ledgers.

A fork is a local, disposable ledger seeded from live state at a chosen
block. Forks run with auto-mining disabled and auto-impersonation
enabled, so a simulator can send unsigned transactions from any address
and mine them one block at a time.

Lifecycle contract:
- ``start`` returns only once the fork answers JSON-RPC, or raises.
- ``stop`` is idempotent and never raises for an already-gone process.
- ``fork_session`` pairs every successful start with exactly one stop.
"""

from __future__ import annotations

import logging
import signal
import socket
import subprocess
import tempfile
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import IO, TYPE_CHECKING, Protocol

import httpx

from perpsim.errors import FOUNDRY_INSTALL_HINT, ForkStartTimeout, ForkUnavailable

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "anvil"
DEFAULT_START_TIMEOUT_MS = 30_000
STOP_GRACE_S = 5.0
PROBE_TIMEOUT_S = 2.0


@dataclass(frozen=True)
class ForkHandle:
    """Running fork.

    Attributes:
        endpoint_url: Local JSON-RPC URL of the fork
        block_number: Block the fork was seeded from (None = latest)
        pid: OS process id, if the fork is a local process
    """

    endpoint_url: str
    block_number: int | None = None
    pid: int | None = None


class ForkManager(Protocol):
    """Protocol for fork lifecycle management."""

    def start(self, live_rpc_url: str, *, block_number: int | None = None) -> ForkHandle:
        """Start a fork of ``live_rpc_url``.

        Raises:
            ForkUnavailable: Fork tooling is not installed
            ForkStartTimeout: Fork did not become reachable in time
        """
        ...

    def stop(self, handle: ForkHandle) -> None:
        """Stop a fork. Idempotent."""
        ...


@contextmanager
def fork_session(
    manager: ForkManager,
    live_rpc_url: str,
    *,
    block_number: int | None = None,
) -> Iterator[ForkHandle]:
    """Run a block of work against a fork; the fork is stopped on every exit path."""
    handle = manager.start(live_rpc_url, block_number=block_number)
    try:
        yield handle
    finally:
        manager.stop(handle)


def find_free_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for an unused TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return int(s.getsockname()[1])


def is_fork_tooling_installed(binary: str = DEFAULT_BINARY, timeout_s: float = 10.0) -> bool:
    """True if ``<binary> --version`` runs and exits 0."""
    try:
        result = subprocess.run(
            [binary, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout_s,
            check=False,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        return False
    return result.returncode == 0


def probe_endpoint(url: str, timeout_s: float = PROBE_TIMEOUT_S) -> bool:
    """True if ``url`` answers eth_blockNumber."""
    try:
        resp = httpx.post(
            url,
            json={"jsonrpc": "2.0", "id": 1, "method": "eth_blockNumber", "params": []},
            timeout=timeout_s,
        )
        return resp.status_code == 200 and "result" in resp.json()
    except (httpx.HTTPError, ValueError):
        return False


class AnvilForkManager:
    """ForkManager backed by local anvil processes.

    Tracks only the processes it started. Clock, sleep, process spawner,
    readiness probe and port finder are injectable for testing.
    """

    def __init__(
        self,
        binary: str = DEFAULT_BINARY,
        start_timeout_ms: int = DEFAULT_START_TIMEOUT_MS,
        *,
        host: str = "127.0.0.1",
        poll_interval_s: float = 0.25,
        popen: Callable[..., subprocess.Popen[bytes]] | None = None,
        probe: Callable[[str], bool] | None = None,
        clock: Callable[[], float] | None = None,
        sleep_func: Callable[[float], None] | None = None,
        port_finder: Callable[[str], int] | None = None,
    ) -> None:
        self.binary = binary
        self.start_timeout_ms = start_timeout_ms
        self._host = host
        self._poll_interval_s = poll_interval_s
        self._popen = popen or subprocess.Popen
        self._probe = probe or probe_endpoint
        self._clock = clock or time.monotonic
        self._sleep = sleep_func or time.sleep
        self._port_finder = port_finder or find_free_port
        self._lock = threading.Lock()
        self._procs: dict[int, subprocess.Popen[bytes]] = {}
        self._stderr_logs: dict[int, IO[bytes]] = {}

    def _command(self, live_rpc_url: str, port: int, block_number: int | None) -> list[str]:
        cmd = [
            self.binary,
            "--fork-url",
            live_rpc_url,
            "--host",
            self._host,
            "--port",
            str(port),
            "--no-mining",
            "--auto-impersonate",
            "--silent",
        ]
        if block_number is not None:
            cmd += ["--fork-block-number", str(block_number)]
        return cmd

    def start(self, live_rpc_url: str, *, block_number: int | None = None) -> ForkHandle:
        port = self._port_finder(self._host)
        endpoint = f"http://{self._host}:{port}"
        cmd = self._command(live_rpc_url, port, block_number)

        # Read back only when the node exits during startup
        stderr_log = tempfile.TemporaryFile()
        try:
            proc = self._popen(cmd, stdout=subprocess.DEVNULL, stderr=stderr_log)
        except (FileNotFoundError, PermissionError) as e:
            stderr_log.close()
            raise ForkUnavailable(self.binary, FOUNDRY_INSTALL_HINT) from e

        deadline = self._clock() + self.start_timeout_ms / 1000.0
        while True:
            exit_code = proc.poll()
            if exit_code is not None:
                detail = f"exited with code {exit_code}"
                stderr = _stderr_tail(stderr_log)
                stderr_log.close()
                if stderr:
                    detail = f"{detail}: {stderr}"
                logger.warning(
                    "FORK_START_FAILED",
                    extra={"endpoint": endpoint, "exit_code": exit_code},
                )
                raise ForkStartTimeout(self.start_timeout_ms, detail)
            if self._probe(endpoint):
                break
            if self._clock() >= deadline:
                self._terminate(proc)
                stderr_log.close()
                logger.warning(
                    "FORK_START_TIMEOUT",
                    extra={"endpoint": endpoint, "timeout_ms": self.start_timeout_ms},
                )
                raise ForkStartTimeout(self.start_timeout_ms, "endpoint not reachable")
            self._sleep(self._poll_interval_s)

        with self._lock:
            self._procs[proc.pid] = proc
            self._stderr_logs[proc.pid] = stderr_log
        logger.info(
            "FORK_STARTED",
            extra={"endpoint": endpoint, "block_number": block_number, "pid": proc.pid},
        )
        return ForkHandle(endpoint_url=endpoint, block_number=block_number, pid=proc.pid)

    def stop(self, handle: ForkHandle) -> None:
        if handle.pid is None:
            return
        with self._lock:
            proc = self._procs.pop(handle.pid, None)
            stderr_log = self._stderr_logs.pop(handle.pid, None)
        if stderr_log is not None:
            stderr_log.close()
        if proc is None:
            return
        self._terminate(proc)
        logger.info("FORK_STOPPED", extra={"endpoint": handle.endpoint_url, "pid": handle.pid})

    def stop_all(self) -> None:
        """Stop every fork this manager started."""
        with self._lock:
            procs = list(self._procs.values())
            logs = list(self._stderr_logs.values())
            self._procs.clear()
            self._stderr_logs.clear()
        for proc in procs:
            self._terminate(proc)
        for log in logs:
            log.close()

    @property
    def running(self) -> int:
        with self._lock:
            return len(self._procs)

    @staticmethod
    def _terminate(proc: subprocess.Popen[bytes]) -> None:
        if proc.poll() is not None:
            return
        try:
            proc.send_signal(signal.SIGTERM)
            try:
                proc.wait(timeout=STOP_GRACE_S)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait(timeout=STOP_GRACE_S)
        except (ProcessLookupError, OSError, subprocess.TimeoutExpired) as e:
            logger.warning("FORK_STOP_ERROR", extra={"pid": proc.pid, "error": str(e)})


def _stderr_tail(log: IO[bytes], limit: int = 500) -> str:
    try:
        log.seek(0)
        data = log.read() or b""
    except (OSError, ValueError):
        return ""
    text = data.decode("utf-8", errors="replace").strip()
    return text[-limit:]
