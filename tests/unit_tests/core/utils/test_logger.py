###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

from gpuval.core.utils import logger


def test_module_format_pads_location():
    prefix = logger.module_format("ctl", 7)
    assert prefix.startswith("[-")
    assert prefix.endswith("ctl.py:7] ")


def test_module_format_widens_for_long_names():
    long_name = "a_very_long_module_name_for_padding"
    prefix = logger.module_format(long_name, 1234)
    assert prefix == f"[{long_name}.py:1234] "
    assert len(logger.module_format("x", 1)) == len(prefix)


def test_file_sink_carries_run_identity(tmp_path):
    path = tmp_path / "run" / "orchestrator.log"
    logger.bind_run("rig-07", 3)
    sink = logger.add_file_sink(str(path))
    try:
        logger.info("probe sequence started")
        logger.log_kv("gpu_burn", "3600s")
    finally:
        logger.remove_sink(sink)
        logger.bind_run("-", "-")

    text = path.read_text()
    assert "[rig-07][gpu-3][INFO]" in text
    assert "test_logger.py:" in text
    assert "probe sequence started" in text
    assert "gpu_burn:".ljust(18) + "3600s" in text


def test_remove_sink_is_idempotent(tmp_path):
    sink = logger.add_file_sink(str(tmp_path / "x.log"))
    logger.remove_sink(sink)
    logger.remove_sink(sink)
    logger.remove_sink(None)
