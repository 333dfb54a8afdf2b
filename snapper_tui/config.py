from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


ENV_SNAPPER_TUI_SNAPPER = "SNAPPER_TUI_SNAPPER"
ENV_SNAPPER_TUI_CONFIG = "SNAPPER_TUI_CONFIG"
ENV_SNAPPER_TUI_SUDO = "SNAPPER_TUI_SUDO"
ENV_SNAPPER_TUI_TIMEOUT = "SNAPPER_TUI_TIMEOUT"
ENV_SNAPPER_TUI_LOG_FILE = "SNAPPER_TUI_LOG_FILE"
ENV_SNAPPER_TUI_LOG_LEVEL = "SNAPPER_TUI_LOG_LEVEL"

DEFAULT_TIMEOUT_S = 60.0
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class Settings:
    snapper_path: str
    config_name: Optional[str] = None
    use_sudo: bool = True
    timeout_s: float = DEFAULT_TIMEOUT_S
    log_file: Optional[Path] = None
    log_level: str = DEFAULT_LOG_LEVEL


def _is_truthy(v: Optional[str]) -> bool:
    if v is None:
        return False
    return v.strip().lower() in ("1", "true", "yes", "y", "on")


def resolve_snapper_path(explicit: Optional[str] = None) -> str:
    """
    Resolve the `snapper` executable.

    Priority:
    - explicit arg
    - $SNAPPER_TUI_SNAPPER
    - PATH lookup
    - plain "snapper" (the failure surfaces when the command first runs)
    """
    if explicit:
        return str(Path(explicit).expanduser())
    env = os.environ.get(ENV_SNAPPER_TUI_SNAPPER)
    if env:
        return str(Path(env).expanduser())
    return shutil.which("snapper") or "snapper"


def should_use_sudo(*, explicit: Optional[bool] = None) -> bool:
    """
    Decide whether mutating snapper commands go through `sudo -n`.

    Priority:
    - explicit arg (if not None)
    - $SNAPPER_TUI_SUDO (if set; truthy/falsey)
    - default: True unless already running as root
    """
    if explicit is not None:
        return bool(explicit)
    env = os.environ.get(ENV_SNAPPER_TUI_SUDO)
    if env is not None:
        return _is_truthy(env)
    geteuid = getattr(os, "geteuid", None)
    if geteuid is not None and geteuid() == 0:
        return False
    return True


def resolve_timeout(explicit: Optional[float] = None) -> float:
    if explicit is not None and explicit > 0:
        return float(explicit)
    env = os.environ.get(ENV_SNAPPER_TUI_TIMEOUT)
    if env:
        try:
            v = float(env)
        except ValueError:
            return DEFAULT_TIMEOUT_S
        if v > 0:
            return v
    return DEFAULT_TIMEOUT_S


def load_settings(
    *,
    snapper_path: Optional[str] = None,
    config_name: Optional[str] = None,
    use_sudo: Optional[bool] = None,
    timeout_s: Optional[float] = None,
    log_file: Optional[str] = None,
    log_level: Optional[str] = None,
) -> Settings:
    """
    Resolve settings from explicit (CLI) values, then environment, then defaults.
    """
    cfg = config_name or os.environ.get(ENV_SNAPPER_TUI_CONFIG) or None
    lf = log_file or os.environ.get(ENV_SNAPPER_TUI_LOG_FILE) or None
    level = (log_level or os.environ.get(ENV_SNAPPER_TUI_LOG_LEVEL) or DEFAULT_LOG_LEVEL).strip().upper()
    return Settings(
        snapper_path=resolve_snapper_path(snapper_path),
        config_name=cfg.strip() if cfg else None,
        use_sudo=should_use_sudo(explicit=use_sudo),
        timeout_s=resolve_timeout(timeout_s),
        log_file=Path(lf).expanduser() if lf else None,
        log_level=level or DEFAULT_LOG_LEVEL,
    )
