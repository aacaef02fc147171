###############################################################################
# Copyright (c) 2025, Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

"""
Site configuration files.

A validation YAML may reference the environment and layer on shared presets:

    extends: lab_defaults.yaml          # or a list, applied left to right
    kit_root: ${GPUVAL_KIT:/opt/gpu-kit}
    durations:
      gpu_burn_seconds: ${BURN_SECONDS:3600}

Values that are exactly one `${VAR}` reference are typed after substitution
(int, float, true/false); references embedded in longer text stay strings.
"""

import os
import re
from typing import Any, List, Optional, Sequence

import yaml

from gpuval.core.config.merge_utils import deep_merge

ENV_REF = re.compile(r"\${([^:{}]+)(?::([^}]*))?}")

_BOOL_WORDS = {"true": True, "false": False}
_INT = re.compile(r"[-+]?\d+")
_FLOAT = re.compile(r"[-+]?(\d+\.\d*|\.\d+)([eE][-+]?\d+)?")


def parse_yaml(path: str, _chain: Optional[Sequence[str]] = None) -> dict:
    """Load one config file with its env references expanded and its presets merged."""
    chain = list(_chain or ()) + [os.path.abspath(path)]
    with open(path, "r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    if cfg is None:
        raise ValueError(f"YAML configuration file '{path}' is empty or invalid.")
    if not isinstance(cfg, dict):
        raise ValueError(f"YAML configuration file '{path}' must contain a mapping at top level.")

    missing: List[str] = []
    cfg = _expand_tree(cfg, missing)
    if missing:
        names = ", ".join(sorted(set(missing)))
        raise ValueError(f"{path}: environment variable(s) required but not set: {names}")

    return _merge_presets(path, cfg, chain)


def expand_env(text: str, missing: Optional[List[str]] = None) -> Any:
    """
    Substitute `${VAR}` / `${VAR:default}` references in one string.

    Unset variables without a default are appended to `missing` (or raise
    ValueError when no list is given) and expand to "".

    >>> os.environ["GPU_IDX"] = "2"
    >>> expand_env("${GPU_IDX}")
    2
    >>> expand_env("rack-${GPU_IDX}")
    'rack-2'
    >>> expand_env("${PRIME_SUDO:false}")
    False
    """

    def substitute(m):
        var, default = m.group(1), m.group(2)
        if var in os.environ:
            return os.environ[var]
        if default is not None:
            return default
        if missing is None:
            raise ValueError(f"Environment variable '{var}' is required but not set.")
        missing.append(var)
        return ""

    expanded = ENV_REF.sub(substitute, text)
    if expanded == text or not ENV_REF.fullmatch(text):
        return expanded
    return _typed(expanded)


def _typed(value: str) -> Any:
    if value.lower() in _BOOL_WORDS:
        return _BOOL_WORDS[value.lower()]
    if _INT.fullmatch(value):
        return int(value)
    if _FLOAT.fullmatch(value):
        return float(value)
    return value


def _expand_tree(node: Any, missing: List[str]) -> Any:
    if isinstance(node, dict):
        return {k: _expand_tree(v, missing) for k, v in node.items()}
    if isinstance(node, list):
        return [_expand_tree(v, missing) for v in node]
    if isinstance(node, str):
        return expand_env(node, missing)
    return node


def _merge_presets(path: str, cfg: dict, chain: List[str]) -> dict:
    """Presets first (left to right), the including file last."""
    presets = cfg.pop("extends", None)
    if presets is None:
        return cfg
    if isinstance(presets, str):
        presets = [presets]
    if not isinstance(presets, list) or not all(isinstance(p, str) for p in presets):
        raise ValueError(f"{path}: 'extends' must be a file name or a list of file names.")

    merged: dict = {}
    base_dir = os.path.dirname(path)
    for preset in presets:
        preset_path = os.path.join(base_dir, os.path.expanduser(preset))
        if os.path.abspath(preset_path) in chain:
            cycle = " -> ".join(os.path.basename(p) for p in chain + [preset_path])
            raise ValueError(f"'extends' cycle: {cycle}")
        merged = deep_merge(merged, parse_yaml(preset_path, chain))
    return deep_merge(merged, cfg)
