###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

import copy
from typing import Any, Dict, Optional


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two configuration layers.

    Rules:
      - override wins (override overwrites base)
      - nested dicts are merged recursively
      - lists and scalars are replaced as a whole
      - override can introduce new fields

    Example:
        base = {"durations": {"gpu_burn_seconds": 3600, "vulkan_seconds": 1800}}
        override = {"durations": {"vulkan_seconds": 600}, "gpu_index": 1}

        deep_merge(base, override) → {
            "durations": {"gpu_burn_seconds": 3600, "vulkan_seconds": 600},
            "gpu_index": 1,
        }
    """
    result = copy.deepcopy(base)

    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = deep_merge(result[key], val)
        else:
            result[key] = copy.deepcopy(val)

    return result


def drop_unset(overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Remove keys whose value is None, recursively.

    CLI flags that were not given arrive as None and must not mask the
    values coming from lower configuration layers.
    """
    out: Dict[str, Any] = {}
    for key, val in overrides.items():
        if val is None:
            continue
        if isinstance(val, dict):
            nested: Optional[Dict[str, Any]] = drop_unset(val)
            if nested:
                out[key] = nested
            continue
        out[key] = val
    return out
