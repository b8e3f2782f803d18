"""Load sidecar.yaml, validate it, and resolve worker paths and environment."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values
from pydantic import ValidationError

from sidecar.config.models import SidecarConfig

DEFAULT_CONFIG_NAME = "sidecar.yaml"
ENV_FILE_NAME = ".env"


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> SidecarConfig:
    """Load and validate a sidecar.yaml file.

    Args:
        path: Explicit config file path. If None, looks for
              sidecar.yaml in the current directory.

    Returns:
        A validated SidecarConfig with ``worker.cwd`` made absolute and
        values from a neighbouring ``.env`` merged into ``worker.env``.

    Raises:
        ConfigError: On missing file, bad YAML, or validation failure.
    """
    config_path = _find_config(path)
    try:
        config = SidecarConfig.model_validate(_load_mapping(config_path))
    except ValidationError as exc:
        raise ConfigError(_describe(exc)) from exc

    base_dir = config_path.parent
    _absolutize_cwd(config, base_dir)
    _apply_env_file(config, base_dir / ENV_FILE_NAME)
    return config


def _find_config(path: Path | None) -> Path:
    if path is None:
        candidate = Path.cwd() / DEFAULT_CONFIG_NAME
        if candidate.is_file():
            return candidate
        msg = (
            f"No {DEFAULT_CONFIG_NAME} found in {Path.cwd()}. "
            "Run `sidecar init` to create one."
        )
        raise ConfigError(msg)

    candidate = Path(path)
    if not candidate.is_file():
        msg = f"Config file not found: {candidate}"
        raise ConfigError(msg)
    return candidate


def _load_mapping(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        msg = f"Cannot read {path}: {exc}"
        raise ConfigError(msg) from exc
    except yaml.YAMLError as exc:
        where = ""
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            where = f" (line {mark.line + 1}, column {mark.column + 1})"
        msg = f"Invalid YAML in {path.name}{where}"
        raise ConfigError(msg) from exc

    if isinstance(data, dict):
        return data
    msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
    raise ConfigError(msg)


def _describe(exc: ValidationError) -> str:
    lines = ["Config validation failed:"]
    for err in exc.errors():
        where = " → ".join(str(part) for part in err["loc"]) or "(root)"
        text = err["msg"]
        if err["type"] == "missing":
            text = "This field is required"
        elif err["type"] == "extra_forbidden":
            text = "Unknown key"
        lines.append(f"  {where}: {text}")
    return "\n".join(lines)


def _absolutize_cwd(config: SidecarConfig, base_dir: Path) -> None:
    cwd = config.worker.cwd
    if cwd is None:
        return
    if not cwd.is_absolute():
        cwd = (base_dir / cwd).resolve()
    if not cwd.is_dir():
        msg = f"Worker directory not found: {cwd}"
        raise ConfigError(msg)
    config.worker.cwd = cwd


def _apply_env_file(config: SidecarConfig, env_path: Path) -> None:
    if not env_path.is_file():
        return
    values = {k: v for k, v in dotenv_values(env_path).items() if v is not None}
    # worker.env wins over .env.
    config.worker.env = {**values, **config.worker.env}
