"""config/loader.py

Loads EngineConfig from YAML with environment variable overrides.
"""

import dataclasses
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from config.runtime_schema import EngineConfig

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = Path(__file__).with_name("engine.yaml")

# YAML section -> {key in section: EngineConfig field}
_SECTIONS: Dict[str, Dict[str, str]] = {
    "endpoints": {
        "rpc_url": "rpc_url",
        "photon_url": "photon_url",
        "helius_api_url": "helius_api_url",
        "jupiter_quote_url": "jupiter_quote_url",
        "jupiter_tokens_url": "jupiter_tokens_url",
        "timeout_ms": "timeout_ms",
    },
    "helius": {
        "api_key": "helius_api_key",
    },
    "compute": {
        "init_units": "init_compute_units",
        "mutate_units": "mutate_compute_units",
    },
    "history": {
        "limit": "history_limit",
    },
    "quotes": {
        "default_slippage_bps": "default_slippage_bps",
    },
    "tokens": {
        "path": "tokens_path",
    },
}

# env var -> (EngineConfig field, converter)
ENV_OVERRIDES = {
    "ELARA_RPC_URL": ("rpc_url", str),
    "ELARA_PHOTON_URL": ("photon_url", str),
    "ELARA_HELIUS_API_URL": ("helius_api_url", str),
    "HELIUS_API_KEY": ("helius_api_key", str),
    "ELARA_TIMEOUT_MS": ("timeout_ms", int),
    "ELARA_TOKENS_PATH": ("tokens_path", str),
}


def _flatten(raw_data: Dict[str, Any]) -> Dict[str, Any]:
    """Map the sectioned YAML document onto EngineConfig field names."""
    flat_data: Dict[str, Any] = {}
    for section, values in raw_data.items():
        mapping = _SECTIONS.get(section)
        if mapping is None:
            raise ValueError(f"Unknown config section: {section}")
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Config section {section} must be a dictionary")
        for key, value in values.items():
            if key not in mapping:
                raise ValueError(f"Unknown config key: {section}.{key}")
            flat_data[mapping[key]] = value
    return flat_data


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for var, (field_name, convert) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        try:
            overrides[field_name] = convert(value)
        except ValueError:
            raise ValueError(f"{var} must be {convert.__name__}, got {value!r}")
    return overrides


def load_engine_config(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> EngineConfig:
    """
    Load the engine configuration.

    Args:
        path: YAML file (defaults to config/engine.yaml; a missing default is not an error)
        env: Environment used for overrides (defaults to os.environ)

    Returns:
        Validated EngineConfig

    Raises:
        ValueError: On unknown keys or out-of-range values
        FileNotFoundError: If an explicit path does not exist
    """
    env = os.environ if env is None else env
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH

    raw_data: Any = {}
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f) or {}
    elif path is not None:
        raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        logger.warning(f"[config] {config_path} not found, using defaults")

    if not isinstance(raw_data, dict):
        raise ValueError("Config root must be a dictionary")

    values = _flatten(raw_data)
    overrides = _env_overrides(env)
    if overrides:
        logger.info(f"[config] Environment overrides: {', '.join(sorted(overrides))}")
    values.update(overrides)

    known = {f.name for f in dataclasses.fields(EngineConfig)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown config fields: {', '.join(sorted(unknown))}")

    config = EngineConfig(**values)
    logger.info(f"[config] Loaded engine config from {config_path}")
    return config
