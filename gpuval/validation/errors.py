###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Error taxonomy and process exit codes for validation runs.

Only ConfigurationError and MissingDependencyError stop a run early. Every
other condition is absorbed into classification so a single probe's failure
never hides the others.
"""

EXIT_PASS = 0
EXIT_CONFIG_ERROR = 1
EXIT_FAIL = 2
EXIT_INTERRUPTED = 130


class GpuValError(Exception):
    """Base class for all validation errors."""

    exit_code = EXIT_CONFIG_ERROR


class ConfigurationError(GpuValError):
    """Invalid run identifier, kit root or run parameters. Raised before any probe runs."""


class MissingDependencyError(GpuValError):
    """A required binary or host tool is absent, a build failed, or a process could not be spawned."""


class ProbeExecutionError(GpuValError):
    """
    A probe process exited with a non-zero status.

    Never raised by the controller; attached to the probe's outcome and left
    to the classifier.
    """

    def __init__(self, probe: str, exit_code: int):
        super().__init__(f"{probe} exited with status {exit_code}")
        self.probe = probe
        self.status = exit_code
