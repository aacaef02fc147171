###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

from dataclasses import FrozenInstanceError
from datetime import datetime

import pytest

from gpuval.validation.context import RunContext, sanitize_run_id
from gpuval.validation.errors import ConfigurationError

NOW = datetime(2025, 6, 2, 10, 15, 0)


class TestSanitizeRunId:

    @pytest.mark.parametrize("run_id", ["TICKET-1234", "asset_42", "a", "_edge_", "---", "RackB-slot3_gpu0"])
    def test_safe_identifiers_are_unchanged(self, run_id):
        assert sanitize_run_id(run_id) == run_id

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("ticket 42", "ticket_42"),
            ("acme/corp#7", "acme_corp_7"),
            ("a   b", "a_b"),
            ("  lead and trail  ", "lead_and_trail"),
            ("!!run!!", "run"),
            ("café-01", "caf_-01"),
        ],
    )
    def test_unsafe_characters_collapse(self, raw, expected):
        assert sanitize_run_id(raw) == expected

    @pytest.mark.parametrize("raw", ["!!!", " / ", "é"])
    def test_unsafe_only_sanitizes_to_empty(self, raw):
        assert sanitize_run_id(raw) == ""


class TestRunContext:

    def test_create(self, fake_kit):
        ctx = RunContext.create("ticket 42", fake_kit, gpu_index=1, gpu_burn_seconds=60, now=NOW)
        assert ctx.run_id_raw == "ticket 42"
        assert ctx.run_id == "ticket_42"
        assert ctx.gpu_index == 1
        assert ctx.durations.gpu_burn_seconds == 60
        assert ctx.durations.vulkan_seconds == 1800
        assert ctx.durations.cuda_memtest_timeout == 0
        assert ctx.timestamp == "2025-06-02_101500"
        assert ctx.run_dir == fake_kit.resolve() / "logs" / "ticket_42_2025-06-02_101500"

    def test_create_does_not_touch_disk(self, fake_kit):
        ctx = RunContext.create("r1", fake_kit, now=NOW)
        assert not ctx.run_dir.exists()

    def test_immutable(self, fake_kit):
        ctx = RunContext.create("r1", fake_kit, now=NOW)
        with pytest.raises(FrozenInstanceError):
            ctx.gpu_index = 3

    @pytest.mark.parametrize("run_id", [None, "", "   "])
    def test_empty_run_id(self, fake_kit, run_id):
        with pytest.raises(ConfigurationError, match="cannot be empty"):
            RunContext.create(run_id, fake_kit)

    def test_unsafe_only_run_id(self, fake_kit):
        with pytest.raises(ConfigurationError, match="sanitized to empty"):
            RunContext.create("???", fake_kit)

    def test_kit_without_src(self, tmp_path):
        with pytest.raises(ConfigurationError, match="KIT path invalid"):
            RunContext.create("r1", tmp_path)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"gpu_index": -1},
            {"gpu_index": "zero"},
            {"gpu_burn_seconds": 0},
            {"vulkan_seconds": -5},
            {"cuda_memtest_timeout": -1},
            {"gpu_index": True},
            {"evidence_lines": "twenty"},
            {"evidence_lines": -1},
        ],
    )
    def test_out_of_range_parameters(self, fake_kit, kwargs):
        with pytest.raises(ConfigurationError):
            RunContext.create("r1", fake_kit, **kwargs)

    def test_from_config(self, base_config):
        ctx = RunContext.from_config(base_config, "bench", now=NOW)
        assert ctx.durations.gpu_burn_seconds == 5
        assert ctx.durations.vulkan_seconds == 30
        assert ctx.kit_root.name == "kit"
        assert ctx.evidence_lines == 20

    def test_from_config_evidence_lines(self, base_config):
        base_config["report"]["evidence_lines"] = "5"
        assert RunContext.from_config(base_config, "bench", now=NOW).evidence_lines == 5
        base_config["report"]["evidence_lines"] = "twenty"
        with pytest.raises(ConfigurationError, match="report.evidence_lines must be an integer"):
            RunContext.from_config(base_config, "bench", now=NOW)

    def test_header_lines(self, fake_kit):
        ctx = RunContext.create("t 1", fake_kit, now=NOW)
        header = ctx.header_lines()
        assert header[0] == "Run ID: t 1 (sanitized: t_1)"
        assert header[2] == "GPU index: 0"
        assert "gpu-burn: 3600s | memtest_vulkan: 1800s | cuda_memtest timeout: 0s" in header
