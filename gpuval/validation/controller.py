###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Run controller.

    INIT -> VALIDATE_CONTEXT -> START_MONITOR -> ENSURE_BINARIES -> RUN_PROBES
         -> CLASSIFY -> REPORT -> COMPLETE

Any ConfigurationError / MissingDependencyError (or Ctrl+C) moves the run to
ABORTED. The kernel monitor is held in a `with` block spanning
ENSURE_BINARIES and RUN_PROBES, so it is stopped on every path out of them
and before the summary is written.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, BinaryIO, Callable, Dict, List, Optional

from gpuval.core.utils import logger

from . import build, host
from .capture import console_sink, run_probe
from .classifier import CheckResult, classify_outcomes
from .context import RunContext
from .errors import EXIT_INTERRUPTED, ConfigurationError, MissingDependencyError
from .monitor import DEFAULT_COMMAND, KernelMonitor
from .probes import ProbeOutcome, ProbeSpec, build_probe_plan, kernel_log_path
from .report import Summary, render_summary, write_summary


class RunState(str, enum.Enum):
    INIT = "INIT"
    VALIDATE_CONTEXT = "VALIDATE_CONTEXT"
    START_MONITOR = "START_MONITOR"
    ENSURE_BINARIES = "ENSURE_BINARIES"
    RUN_PROBES = "RUN_PROBES"
    CLASSIFY = "CLASSIFY"
    REPORT = "REPORT"
    COMPLETE = "COMPLETE"
    ABORTED = "ABORTED"


MonitorFactory = Callable[[RunContext], KernelMonitor]


def default_monitor_factory(cfg: Dict[str, Any]) -> MonitorFactory:
    """
    Read the `monitor` section once and return a factory for the run's monitor.

    Raises:
        ConfigurationError: malformed command or stop timeout.
    """
    mon_cfg = cfg.get("monitor") or {}
    command = mon_cfg.get("command") or DEFAULT_COMMAND
    if isinstance(command, str) or not isinstance(command, (list, tuple)):
        raise ConfigurationError(f"monitor.command must be a list of arguments, got {command!r}")
    raw_timeout = mon_cfg.get("stop_timeout_s", 5)
    try:
        stop_timeout_s = float(raw_timeout)
    except (TypeError, ValueError):
        raise ConfigurationError(f"monitor.stop_timeout_s must be a number, got {raw_timeout!r}") from None
    if isinstance(raw_timeout, bool) or stop_timeout_s <= 0:
        raise ConfigurationError(f"monitor.stop_timeout_s must be a positive number, got {raw_timeout!r}")
    prime_sudo = bool(mon_cfg.get("prime_sudo", True))

    def factory(ctx: RunContext) -> KernelMonitor:
        return KernelMonitor(
            kernel_log_path(ctx),
            command=[str(arg) for arg in command],
            stop_timeout_s=stop_timeout_s,
            prime_sudo=prime_sudo,
        )

    return factory


class RunController:
    def __init__(
        self,
        cfg: Dict[str, Any],
        run_id: Optional[str],
        console: Optional[BinaryIO] = None,
        monitor_factory: Optional[MonitorFactory] = None,
        probe_runner: Callable[..., ProbeOutcome] = run_probe,
        compute_cap: Callable[[int], str] = build.query_compute_capability,
        snapshot: bool = True,
        now: Optional[datetime] = None,
    ):
        self.cfg = cfg
        self.run_id = run_id
        self.console = console if console is not None else console_sink()
        self.monitor_factory = monitor_factory
        self.probe_runner = probe_runner
        self.compute_cap = compute_cap
        self.snapshot = snapshot
        self.now = now

        self.state = RunState.INIT
        self.history: List[RunState] = [RunState.INIT]
        self.context: Optional[RunContext] = None
        self.monitor: Optional[KernelMonitor] = None
        self.outcomes: List[ProbeOutcome] = []
        self.checks: List[CheckResult] = []
        self.summary: Optional[Summary] = None
        self.error: Optional[BaseException] = None

    def _enter(self, state: RunState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug(f"state -> {state.value}")

    # ------------------------------------------------------------------
    def run(self) -> int:
        """Execute the whole run; return the process exit code."""
        sink_id: Optional[int] = None
        try:
            self._enter(RunState.VALIDATE_CONTEXT)
            ctx = RunContext.from_config(self.cfg, self.run_id, now=self.now)
            self.context = ctx
            plan = build_probe_plan(ctx, self.cfg)
            if self.monitor_factory is None:
                self.monitor_factory = default_monitor_factory(self.cfg)

            try:
                ctx.run_dir.mkdir(parents=True, exist_ok=False)
            except OSError as e:
                raise ConfigurationError(f"Cannot create run folder {ctx.run_dir}: {e}") from e
            logger.bind_run(ctx.run_id, ctx.gpu_index)
            sink_id = logger.add_file_sink(str(ctx.artifact("orchestrator.log")))
            logger.info(f"{logger.LOGGING_BANNER} GPU validation run")
            logger.log_kv("run id", f"{ctx.run_id_raw} (sanitized: {ctx.run_id})")
            logger.log_kv("run folder", ctx.run_dir)
            logger.log_kv("gpu index", ctx.gpu_index)
            logger.log_kv("gpu_burn", f"{ctx.durations.gpu_burn_seconds}s")
            logger.log_kv("memtest_vulkan", f"{ctx.durations.vulkan_seconds}s")
            logger.log_kv("cuda_memtest", f"timeout {ctx.durations.cuda_memtest_timeout}s (0 = none)")

            self._enter(RunState.START_MONITOR)
            host.stop_competing_probes(self.cfg.get("stop_competing") or [])
            with self.monitor_factory(ctx) as monitor:
                self.monitor = monitor
                if self.snapshot:
                    host.write_system_snapshot(ctx)
                if host.which("nvtop"):
                    logger.info("TIP: In another terminal, run: nvtop  (interactive GPU monitor)")

                self._enter(RunState.ENSURE_BINARIES)
                build.ensure_binaries(
                    plan,
                    ctx,
                    required_commands=self.cfg.get("required_commands") or [],
                    console=self.console,
                    compute_cap=self.compute_cap,
                )

                self._enter(RunState.RUN_PROBES)
                for spec in plan:
                    self.outcomes.append(self._run_one(spec))

            self._enter(RunState.CLASSIFY)
            self.checks = classify_outcomes(self.outcomes, kernel_log_path(ctx), evidence_lines=ctx.evidence_lines)

            self._enter(RunState.REPORT)
            self.summary = Summary.build(self.checks, run_dir=ctx.run_dir, header=ctx.header_lines())
            write_summary(self.summary, ctx.artifact("SUMMARY.txt"))
            self._echo(render_summary(self.summary))

            self._enter(RunState.COMPLETE)
            return self.summary.exit_code
        except (ConfigurationError, MissingDependencyError) as e:
            self.error = e
            logger.error(f"{type(e).__name__}: {e}")
            self._enter(RunState.ABORTED)
            return e.exit_code
        except KeyboardInterrupt as e:
            self.error = e
            logger.error("Run interrupted by operator")
            self._enter(RunState.ABORTED)
            return EXIT_INTERRUPTED
        finally:
            logger.remove_sink(sink_id)

    def _run_one(self, spec: ProbeSpec) -> ProbeOutcome:
        logger.info(f"{logger.LOGGING_BANNER} {spec.name}: {' '.join(spec.command)}")
        if spec.deadline_s:
            logger.info(f"Duration: {spec.deadline_s}s ({spec.cancel.value} on expiry)")
        outcome = self.probe_runner(spec, console=self.console)
        err = outcome.execution_error
        if err is not None:
            logger.warning(f"{err}; continuing with the next probe")
        return outcome

    def _echo(self, text: str) -> None:
        if self.console is None:
            return
        try:
            self.console.write(text.encode("utf-8"))
            self.console.flush()
        except (OSError, ValueError) as e:
            logger.warning(f"Could not echo the summary to the console: {e}")


def run_validation(cfg: Dict[str, Any], run_id: Optional[str], **kwargs: Any) -> int:
    return RunController(cfg, run_id, **kwargs).run()

