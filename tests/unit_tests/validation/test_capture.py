###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

import io
import os
import signal
import sys
import threading
from pathlib import Path

import pytest

from gpuval.validation import capture
from gpuval.validation.capture import Deadline, run_and_capture, run_probe
from gpuval.validation.errors import MissingDependencyError
from gpuval.validation.probes import BURN, CancelMode, ProbeSpec


def _py(code):
    return [sys.executable, "-c", code]


class TestDeadline:

    def test_remaining_uses_clock(self):
        now = [100.0]
        d = Deadline(30, clock=lambda: now[0])
        assert d.remaining() == 30
        now[0] = 120.0
        assert d.remaining() == 10
        assert not d.expired
        now[0] = 131.0
        assert d.remaining() == 0
        assert d.expired


class TestRunAndCapture:

    def test_console_and_log_receive_identical_bytes(self, tmp_path):
        console = io.BytesIO()
        log = tmp_path / "probe.log"
        code = (
            "import sys\n"
            "sys.stdout.write('Result = PASS\\n')\n"
            "sys.stdout.flush()\n"
            "sys.stderr.write('warning on stderr\\n')\n"
            "sys.stdout.buffer.write(bytes(range(256)))\n"
        )
        result = run_and_capture(_py(code), log, console=console)
        assert result.exit_code == 0
        assert not result.cancelled
        assert console.getvalue() == log.read_bytes()
        assert b"warning on stderr" in log.read_bytes()
        assert result.bytes_captured == len(log.read_bytes())

    def test_nonzero_exit_is_returned_not_raised(self, tmp_path):
        result = run_and_capture(_py("import sys; print('CUDA error'); sys.exit(3)"), tmp_path / "p.log")
        assert result.exit_code == 3

    def test_appends_to_existing_log(self, tmp_path):
        log = tmp_path / "p.log"
        log.write_bytes(b"earlier\n")
        run_and_capture(_py("print('later')"), log)
        assert log.read_bytes() == b"earlier\nlater\n"

    def test_spawn_failure_is_fatal(self, tmp_path):
        with pytest.raises(MissingDependencyError, match="Failed to start"):
            run_and_capture([str(tmp_path / "does-not-exist")], tmp_path / "p.log")

    def test_deadline_sends_interrupt_and_keeps_output(self, tmp_path):
        code = (
            "import sys, time\n"
            "print('iteration 1 ok', flush=True)\n"
            "try:\n"
            "    time.sleep(60)\n"
            "except KeyboardInterrupt:\n"
            "    print('stopped by user, no errors', flush=True)\n"
            "    sys.exit(0)\n"
        )
        log = tmp_path / "vk.log"
        result = run_and_capture(_py(code), log, deadline=Deadline(2.0), cancel=CancelMode.INTERRUPT)
        assert result.cancelled
        assert result.exit_code == 0
        assert log.read_text() == "iteration 1 ok\nstopped by user, no errors\n"

    def test_terminate_mode_sends_sigterm(self, tmp_path):
        code = "import time\nprint('start', flush=True)\ntime.sleep(60)\n"
        result = run_and_capture(_py(code), tmp_path / "m.log", deadline=Deadline(2.0), cancel=CancelMode.TERMINATE)
        assert result.cancelled
        assert result.exit_code == -signal.SIGTERM

    def test_broken_console_does_not_stall_child(self, tmp_path):
        class ClosedConsole:
            def write(self, data):
                raise BrokenPipeError(32, "Broken pipe")

            def flush(self):
                pass

        log = tmp_path / "big.log"
        code = "import sys\nsys.stdout.buffer.write(b'x' * 1000000)\n"
        result = run_and_capture(_py(code), log, console=ClosedConsole(), deadline=Deadline(30.0))
        assert not result.cancelled
        assert result.exit_code == 0
        assert log.stat().st_size == 1000000


class TestRunProbe:

    def test_outcome_fields(self, tmp_path, make_script):
        exe = make_script(tmp_path / "gpu-burn" / "gpu_burn", 'pwd\necho "args: $*"\nexit 1\n')
        spec = ProbeSpec(
            name="gpu_burn",
            category=BURN,
            executable=exe,
            args=("-m", "90%", "5"),
            log_path=tmp_path / "logs" / "gpu_burn.log",
        )
        outcome = run_probe(spec)
        assert outcome.name == "gpu_burn"
        assert outcome.category == BURN
        assert outcome.exit_code == 1
        assert outcome.execution_error is not None
        assert outcome.execution_error.status == 1
        text = spec.log_path.read_text().splitlines()
        assert Path(text[0]).resolve() == exe.parent.resolve()
        assert text[1] == "args: -m 90% 5"


def _interrupt_self_after(seconds):
    timer = threading.Timer(seconds, os.kill, (os.getpid(), signal.SIGINT))
    timer.start()
    return timer


class TestAbortOnInterrupt:

    def test_child_gets_sigint_and_output_is_kept(self, tmp_path, make_script):
        exe = make_script(
            tmp_path / "child",
            'trap \'echo "interrupted"; exit 0\' INT\necho "running"\nwhile true; do sleep 0.1; done\n',
        )
        log = tmp_path / "p.log"
        timer = _interrupt_self_after(1.0)
        try:
            with pytest.raises(KeyboardInterrupt):
                run_and_capture([str(exe)], log)
        finally:
            timer.cancel()
        assert log.read_text() == "running\ninterrupted\n"

    def test_child_ignoring_sigint_is_killed(self, tmp_path, make_script, monkeypatch):
        monkeypatch.setattr(capture, "_ABORT_GRACE_S", 0.5)
        pid_file = tmp_path / "child.pid"
        exe = make_script(
            tmp_path / "stubborn",
            f'trap "" INT\necho $$ > "{pid_file}"\nwhile true; do sleep 0.1; done\n',
        )
        timer = _interrupt_self_after(1.0)
        try:
            with pytest.raises(KeyboardInterrupt):
                run_and_capture([str(exe)], tmp_path / "s.log")
        finally:
            timer.cancel()
        pid = int(pid_file.read_text())
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
