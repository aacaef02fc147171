###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Configuration layering for validation runs.

Layers, lowest priority first:
    1. gpuval/configs/validation.yaml (shipped defaults)
    2. an optional user/site YAML file (may itself use `extends:`)
    3. explicit overrides, typically collected from CLI flags
"""

import os
from typing import Any, Dict, Optional

from gpuval.core.config.merge_utils import deep_merge, drop_unset
from gpuval.core.config.yaml_loader import parse_yaml

_PACKAGE_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
DEFAULT_CONFIG_PATH = os.path.join(_PACKAGE_ROOT, "configs", "validation.yaml")


def load_config(
    user_config: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    cfg = parse_yaml(DEFAULT_CONFIG_PATH)
    if user_config:
        if not os.path.isfile(user_config):
            raise FileNotFoundError(f"Config file not found: {user_config}")
        cfg = deep_merge(cfg, parse_yaml(user_config))
    if overrides:
        cfg = deep_merge(cfg, drop_unset(overrides))
    return cfg
