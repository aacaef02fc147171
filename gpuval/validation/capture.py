###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Process capture: run one external command, relay its combined stdout/stderr
byte-for-byte to the console and to a dedicated log file, and return its
exit status. A non-zero status is data, not an exception.
"""

from __future__ import annotations

import signal
import subprocess
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Sequence

from gpuval.core.utils import logger

from .errors import MissingDependencyError
from .probes import CancelMode, ProbeOutcome, ProbeSpec

_CHUNK = 64 * 1024

# Grace period before a child that ignored the run-wide interrupt is killed.
_ABORT_GRACE_S = 10.0


class Deadline:
    """
    Cancellation token with a fixed expiry.

    The capture wait races the process's natural exit against this deadline;
    on expiry the process is asked to stop, its output so far stays valid.
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.seconds = float(seconds)
        self._expires_at = clock() + self.seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0


@dataclass(frozen=True)
class CaptureResult:
    exit_code: int
    bytes_captured: int
    cancelled: bool


def console_sink() -> Optional[BinaryIO]:
    return getattr(sys.stdout, "buffer", None)


def _relay(stream: BinaryIO, sinks: List[BinaryIO], counter: List[int]) -> None:
    # Keep reading until EOF even if every sink is gone, or the child blocks
    # on a full pipe.
    read = getattr(stream, "read1", stream.read)
    live = list(sinks)
    while True:
        chunk = read(_CHUNK)
        if not chunk:
            break
        counter[0] += len(chunk)
        for sink in list(live):
            try:
                sink.write(chunk)
                sink.flush()
            except (OSError, ValueError) as e:
                live.remove(sink)
                logger.warning(f"Output relay dropped a sink after write error: {e}")


def _cancel_signal(mode: CancelMode) -> int:
    if mode is CancelMode.TERMINATE:
        return signal.SIGTERM
    return signal.SIGINT


def _abort(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    proc.send_signal(signal.SIGINT)
    try:
        proc.wait(timeout=_ABORT_GRACE_S)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


def run_and_capture(
    cmd: Sequence[str],
    log_path: Path,
    cwd: Optional[Path] = None,
    console: Optional[BinaryIO] = None,
    deadline: Optional[Deadline] = None,
    cancel: CancelMode = CancelMode.INTERRUPT,
) -> CaptureResult:
    """
    Spawn `cmd`, tee its output into `log_path` (append mode) and `console`.

    When `deadline` is given and expires first, the process receives the
    cancel signal (SIGINT by default, not a kill) and is then waited for
    without a further ceiling, the same way `timeout -s INT` behaves.

    Raises:
        MissingDependencyError: the process could not be spawned.
    """
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    counter = [0]
    cancelled = False

    with open(log_path, "ab") as log_fh:
        try:
            proc = subprocess.Popen(
                list(cmd),
                cwd=str(cwd) if cwd else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            raise MissingDependencyError(f"Failed to start {cmd[0]}: {e}") from e

        sinks = [log_fh] if console is None else [console, log_fh]
        relay = threading.Thread(target=_relay, args=(proc.stdout, sinks, counter), daemon=True)
        relay.start()

        try:
            if deadline is None:
                proc.wait()
            else:
                try:
                    proc.wait(timeout=deadline.remaining())
                except subprocess.TimeoutExpired:
                    cancelled = True
                    logger.info(
                        f"{Path(cmd[0]).name}: {deadline.seconds:.0f}s elapsed, "
                        f"sending {signal.Signals(_cancel_signal(cancel)).name}"
                    )
                    proc.send_signal(_cancel_signal(cancel))
                    proc.wait()
        except BaseException:
            _abort(proc)
            raise
        finally:
            relay.join()
            proc.stdout.close()

    return CaptureResult(exit_code=proc.returncode, bytes_captured=counter[0], cancelled=cancelled)


def run_probe(spec: ProbeSpec, console: Optional[BinaryIO] = None) -> ProbeOutcome:
    """Run one probe to completion (or to its deadline) and describe what happened."""
    deadline = Deadline(spec.deadline_s) if spec.deadline_s else None
    result = run_and_capture(
        spec.command,
        spec.log_path,
        cwd=spec.cwd,
        console=console,
        deadline=deadline,
        cancel=spec.cancel,
    )
    return ProbeOutcome(
        name=spec.name,
        category=spec.category,
        log_path=spec.log_path,
        exit_code=result.exit_code,
        bytes_captured=result.bytes_captured,
        cancelled=result.cancelled,
    )
