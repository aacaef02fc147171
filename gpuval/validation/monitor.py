###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Background kernel-message capture (`dmesg -wT` by default).

The monitor is a scoped resource: use it as a context manager so it is
stopped on every exit path, including fatal errors and Ctrl+C.
"""

from __future__ import annotations

import signal
import subprocess
from pathlib import Path
from typing import IO, List, Optional, Sequence

from gpuval.core.utils import logger

from .errors import MissingDependencyError

DEFAULT_COMMAND = ("sudo", "dmesg", "-wT")


class KernelMonitor:
    def __init__(
        self,
        log_path: Path,
        command: Sequence[str] = DEFAULT_COMMAND,
        stop_timeout_s: float = 5.0,
        prime_sudo: bool = False,
    ):
        self.log_path = Path(log_path)
        self.command: List[str] = list(command)
        self.stop_timeout_s = stop_timeout_s
        self.prime_sudo = prime_sudo
        self._proc: Optional[subprocess.Popen] = None
        self._log_fh: Optional[IO[bytes]] = None

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def start(self) -> "KernelMonitor":
        if self._proc is not None:
            raise RuntimeError("kernel monitor already started")
        if self.prime_sudo and self.command and self.command[0] == "sudo":
            # Ask for the password up front instead of from a detached child.
            try:
                rc = subprocess.call(["sudo", "-v"])
            except OSError as e:
                raise MissingDependencyError(f"sudo is not available: {e}") from e
            if rc != 0:
                raise MissingDependencyError("sudo -v failed; kernel log capture needs sudo")

        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._log_fh = open(self.log_path, "ab")
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=subprocess.DEVNULL,
                stdout=self._log_fh,
                stderr=subprocess.DEVNULL,
            )
        except OSError as e:
            self._log_fh.close()
            self._log_fh = None
            raise MissingDependencyError(f"Failed to start kernel monitor {self.command[0]}: {e}") from e
        logger.info(f"Kernel monitor started (pid {self._proc.pid}) -> {self.log_path.name}")
        return self

    def _signal(self, proc: subprocess.Popen, sig: str) -> None:
        try:
            proc.send_signal(getattr(signal, f"SIG{sig}"))
        except PermissionError:
            # A child running under sudo belongs to root.
            if self.command[0] != "sudo":
                raise
            subprocess.call(["sudo", "kill", f"-{sig}", str(proc.pid)])

    def stop(self) -> None:
        """Terminate the capture process and flush its log. Idempotent."""
        proc = self._proc
        if proc is not None and proc.poll() is None:
            self._signal(proc, "TERM")
            try:
                proc.wait(timeout=self.stop_timeout_s)
            except subprocess.TimeoutExpired:
                logger.warning(f"Kernel monitor (pid {proc.pid}) ignored SIGTERM, killing")
                self._signal(proc, "KILL")
                proc.wait()
            logger.info(f"Kernel monitor stopped (pid {proc.pid})")
        if self._log_fh is not None:
            self._log_fh.flush()
            self._log_fh.close()
            self._log_fh = None

    def __enter__(self) -> "KernelMonitor":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
