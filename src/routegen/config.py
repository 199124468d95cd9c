"""Project configuration and precedence resolution.

Settings come from four layers, highest precedence first:

1. CLI flags passed to :func:`resolve_config`.
2. Environment variables ``ROUTEGEN_OUTPUT_DIR`` and ``ROUTEGEN_SPEC``.
3. The project file ``./routegen.json``.
4. :class:`~routegen.models.GeneratorConfig` defaults.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from routegen.exceptions import ConfigError
from routegen.models import GeneratorConfig

PROJECT_CONFIG_FILENAME = "routegen.json"

_ENV_OVERRIDES = {
    "ROUTEGEN_OUTPUT_DIR": "output_dir",
    "ROUTEGEN_SPEC": "spec_override",
}


def load_project_config(directory: Optional[Path] = None) -> Optional[dict[str, Any]]:
    """Load ``routegen.json`` from *directory* (default: the working directory).

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file is not valid JSON or not a JSON object.
    """
    path = (directory or Path.cwd()) / PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data


def resolve_config(
    cli_output_dir: Optional[str] = None,
    cli_spec: Optional[str] = None,
    directory: Optional[Path] = None,
) -> GeneratorConfig:
    """Merge every configuration layer into one :class:`GeneratorConfig`.

    Raises:
        ConfigError: If ``routegen.json`` is malformed or has unknown values.
    """
    # 4 + 3. Defaults, overlaid with the project file
    values: dict[str, Any] = dict(load_project_config(directory) or {})

    # 2. Environment variables
    for env_var, key in _ENV_OVERRIDES.items():
        env_value = os.environ.get(env_var)
        if env_value:
            values[key] = env_value

    # 1. CLI flags
    if cli_output_dir is not None:
        values["output_dir"] = cli_output_dir
    if cli_spec is not None:
        values["spec_override"] = cli_spec

    try:
        return GeneratorConfig.model_validate(values)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first["loc"]) or "config"
        raise ConfigError(f"Invalid configuration value for {where}: {first['msg']}") from exc


def get_log_dir() -> Path:
    """Return the directory crash logs are written to, creating it if necessary.

    ``$XDG_STATE_HOME/routegen/logs`` when the variable is set, otherwise
    ``~/.local/state/routegen/logs``.
    """
    base = os.environ.get("XDG_STATE_HOME") or str(Path.home() / ".local" / "state")
    path = Path(base) / "routegen" / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path
