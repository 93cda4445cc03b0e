"""YAML configuration loader.

Overlays a single YAML file on top of the environment-derived
AgentConfig. When no file is given, env vars work exactly as before.

Example YAML:
    agent:
      provider: claude-code
      default_model: ""
      include_history: true
      history_max_messages: 20

    server:
      host: 0.0.0.0
      port: 3100
      model_options: [pro, flash]

    paths:
      data_dir: ./data
      playground_dir: ./playground
      system_prompt: ./SYSTEM_PROMPT.md
      static_dir: ./public

    timeouts:
      auth_probe: 30
      mock_delay: 1.0

    logging:
      level: INFO
      file: ./logs/agent.log

Relative paths are resolved against the directory holding the YAML file.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from .config import AgentConfig, parse_model_options
from .errors import ConfigError

logger = logging.getLogger(__name__)

_KNOWN_SECTIONS = ("agent", "server", "paths", "timeouts", "logging")

# section -> yaml key -> AgentConfig field
_SCALAR_FIELDS: dict[str, dict[str, str]] = {
    "agent": {
        "provider": "provider",
        "default_model": "default_model",
        "include_history": "include_history",
        "history_max_messages": "history_max_messages",
    },
    "server": {
        "host": "host",
        "port": "port",
        "password": "password",
    },
    "timeouts": {
        "auth_probe": "auth_probe_timeout",
        "mock_delay": "mock_delay",
    },
    "logging": {
        "level": "log_level",
        "file": "log_file",
    },
}

_PATH_FIELDS: dict[str, str] = {
    "data_dir": "data_dir",
    "playground_dir": "playground_dir",
    "system_prompt": "system_prompt_path",
    "static_dir": "static_dir",
}


def _section(data: dict[str, Any], name: str, path: Path) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Section '{name}' in {path} must be a mapping")
    return value


def _resolve_path(value: str, base: Path) -> str:
    candidate = Path(str(value)).expanduser()
    if not candidate.is_absolute():
        candidate = base / candidate
    return str(candidate)


def load_yaml_config(path: str | Path, base: AgentConfig | None = None) -> AgentConfig:
    """Load a YAML config file and merge it over *base*.

    Raises ConfigError when the file is missing, unparsable, or not
    shaped as a mapping of sections.
    """
    path = Path(path)
    config = base or AgentConfig()
    logger.info(
        "load_yaml_config: loading %s (exists=%s)", path, path.is_file()
    )
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML parse error in {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigError(f"Top level of {path} must be a mapping")

    for key in data:
        if key not in _KNOWN_SECTIONS:
            logger.warning(
                "load_yaml_config: ignoring unknown section '%s' in %s", key, path
            )

    overrides: dict[str, Any] = {}
    for section_name, fields in _SCALAR_FIELDS.items():
        section = _section(data, section_name, path)
        for yaml_key, attr in fields.items():
            if yaml_key in section and section[yaml_key] is not None:
                overrides[attr] = section[yaml_key]

    server = _section(data, "server", path)
    if "model_options" in server:
        overrides["model_options"] = parse_model_options(server["model_options"])

    paths = _section(data, "paths", path)
    base_dir = path.parent.resolve()
    for yaml_key, attr in _PATH_FIELDS.items():
        if paths.get(yaml_key):
            overrides[attr] = _resolve_path(paths[yaml_key], base_dir)

    try:
        if "port" in overrides:
            overrides["port"] = int(overrides["port"])
        if "history_max_messages" in overrides:
            overrides["history_max_messages"] = int(overrides["history_max_messages"])
        for attr in ("auth_probe_timeout", "mock_delay"):
            if attr in overrides:
                overrides[attr] = float(overrides[attr])
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid numeric value in {path}: {exc}") from exc

    if "include_history" in overrides:
        overrides["include_history"] = bool(overrides["include_history"])
    if "log_level" in overrides:
        overrides["log_level"] = str(overrides["log_level"]).strip().upper()
    if "log_file" in overrides:
        overrides["log_file"] = _resolve_path(str(overrides["log_file"]), base_dir)
    for attr in ("provider", "default_model", "host"):
        if attr in overrides:
            overrides[attr] = str(overrides[attr]).strip()

    logger.info(
        "load_yaml_config: applied %d override(s) from %s: %s",
        len(overrides), path,
        ", ".join(sorted(k for k in overrides if k != "password")) or "none",
    )
    return replace(config, **overrides)
