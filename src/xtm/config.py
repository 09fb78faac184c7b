"""Settings from ``xtm.toml``, the environment, and editor options."""

from __future__ import annotations

import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from xtm.client import DEFAULT_HOSTNAME, DEFAULT_PORT
from xtm.indent import BODY_INDENT, LOOKBACK_LINES

CONFIG_NAME = "xtm.toml"
SHAREDIR_ENV = "EXTEMPORE_PATH"


@dataclass(frozen=True, slots=True)
class Settings:
    """Resolved settings shared by the CLI and the language server."""

    hostname: str = DEFAULT_HOSTNAME
    port: int = DEFAULT_PORT
    timeout: float = 5.0
    body_indent: int = BODY_INDENT
    lookback_lines: int = LOOKBACK_LINES
    sharedir: Path | None = None


def load_config(config_path: Path | None, search_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else search_dir / CONFIG_NAME

    if not path.is_file():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


def resolve_settings(
    config: Mapping[str, Any],
    env: Mapping[str, str] | None = None,
    workspace_root: Path | None = None,
) -> Settings:
    """Merge defaults, a config mapping, and the environment into Settings.

    Precedence: defaults < config < environment. The Extempore directory
    falls back to the workspace root when neither names one.
    """
    env = env or {}
    values: dict[str, Any] = {}

    connection = config.get("connection")
    if isinstance(connection, dict):
        hostname = connection.get("hostname")
        if isinstance(hostname, str) and hostname:
            values["hostname"] = hostname
        port = connection.get("port")
        if isinstance(port, int) and not isinstance(port, bool):
            values["port"] = port
        timeout = connection.get("timeout")
        if isinstance(timeout, (int, float)) and not isinstance(timeout, bool):
            values["timeout"] = float(timeout)

    fmt = config.get("format")
    if isinstance(fmt, dict):
        body_indent = fmt.get("body_indent")
        if isinstance(body_indent, int) and body_indent >= 0:
            values["body_indent"] = body_indent
        lookback = fmt.get("lookback_lines")
        if isinstance(lookback, int) and lookback > 0:
            values["lookback_lines"] = lookback

    sharedir: Path | None = None
    extempore = config.get("extempore")
    if isinstance(extempore, dict):
        cfg_sharedir = extempore.get("sharedir")
        if isinstance(cfg_sharedir, str) and cfg_sharedir:
            sharedir = Path(cfg_sharedir).expanduser()
    if env.get(SHAREDIR_ENV):
        sharedir = Path(env[SHAREDIR_ENV]).expanduser()
    if sharedir is None:
        sharedir = workspace_root
    values["sharedir"] = sharedir

    return Settings(**values)
