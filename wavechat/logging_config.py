from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import HubRuntimeConfig

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# uvicorn and pymongo are chatty at INFO; they get log_library_level.
LIBRARY_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "pymongo")


def parse_level(value: Any, default: int) -> int:
    """Accept a level name ("warn" included), a number, or a numeric string."""
    if isinstance(value, int):
        return value
    text = str(value or "").strip().upper()
    if not text:
        return default
    if text == "WARN":
        text = "WARNING"

    named = logging.getLevelNamesMapping().get(text)
    if named is not None:
        return named
    return int(text) if text.isdigit() else default


def _log_file_path(cfg: HubRuntimeConfig, override_file: str | None) -> Path | None:
    raw = override_file if override_file is not None else cfg.log_file
    if raw is None or not str(raw).strip():
        return None
    return Path(os.path.expanduser(str(raw)))


def _file_handler(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass
    return handler


def build_handlers(
    cfg: HubRuntimeConfig, *, override_file: str | None = None
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())

    path = _log_file_path(cfg, override_file)
    if path is not None:
        handlers.append(_file_handler(path))

    formatter = logging.Formatter(
        fmt=str(cfg.log_format).strip() or DEFAULT_FORMAT,
        datefmt=(cfg.log_datefmt or None),
    )
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_logging(
    cfg: HubRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Install wavechat's root handlers, replacing any existing ones.

    An empty override_file disables file logging even if the config sets one.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    for handler in build_handlers(cfg, override_file=override_file):
        root.addHandler(handler)
    root.setLevel(parse_level(override_level or cfg.log_level, logging.INFO))

    library_level = parse_level(cfg.log_library_level, logging.WARNING)
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logging.captureWarnings(True)
