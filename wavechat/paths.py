"""Where wavechat keeps its config file and file-backed snapshots."""

from __future__ import annotations

import contextlib
import os
from collections.abc import Mapping
from pathlib import Path

HOME_ENV = "WAVECHAT_HOME"
CONFIG_FILENAME = "wavechat.toml"
DATA_DIRNAME = "data"


def wavechat_home(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    return Path(os.path.expanduser(env.get(HOME_ENV) or "~/.wavechat"))


def default_config_path(environ: Mapping[str, str] | None = None) -> Path:
    return wavechat_home(environ) / CONFIG_FILENAME


def default_data_dir(environ: Mapping[str, str] | None = None) -> Path:
    return wavechat_home(environ) / DATA_DIRNAME


def ensure_private_dir(path: Path, mode: int = 0o700) -> Path:
    """Create path if needed and restrict it to the owner where the filesystem allows."""
    path.mkdir(parents=True, exist_ok=True, mode=mode)
    with contextlib.suppress(OSError):
        path.chmod(mode)
    return path
