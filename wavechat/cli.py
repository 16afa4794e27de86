from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

import uvicorn

from .config import HubRuntimeConfig, apply_config_data, apply_env
from .logging_config import configure_logging
from .paths import default_config_path, default_data_dir, ensure_private_dir


def _load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        return tomllib.load(f)


def _write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    data_dir = str(default_data_dir())

    content = f"""# wavechat configuration (TOML)
#
# This file was created on first run.
# Environment variables ADMIN_KEY, MONGODB_URI and PORT override it;
# command-line flags override both.

[hub]

host = "0.0.0.0"
port = 3000

# Where snapshots are kept.
#   ""                          memory only (lost on restart)
#   a directory or file:// URL  one file per key
#   mongodb:// or mongodb+srv:// MongoDB, database store_db_name
store_url = {data_dir!r}
store_db_name = "wave-chat"

# Shared secret for the /admin endpoints. Leave empty to disable them.
admin_key = ""

# The first identity registered with this nickname becomes admin.
admin_nickname = "mefisto"

# Trust X-Forwarded-For / X-Real-IP for the client address.
# Only enable this behind a reverse proxy you control.
trust_proxy_headers = true
cors_origins = ["*"]

# Nickname and message policy.
nick_min_chars = 3
nick_max_chars = 20
message_max_chars = 100

# Message retention (seconds) and background intervals (0 disables a loop).
retention_s = 86400.0
sweep_interval_s = 60.0
snapshot_interval_s = 300.0
stats_interval_s = 60.0

# Snapshot after every Nth accepted message; keep at most this many messages.
persist_every_messages = 10
snapshot_max_messages = 1000

[logging]

# Log level for wavechat itself.
level = "INFO"

# Log level for uvicorn and pymongo.
library_level = "WARNING"

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s: %(message)s"
datefmt = ""
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)
    try:
        os.chmod(config_path, 0o600)
    except OSError:
        pass


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="wavechat", description="Run a wavechat server")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--host", default=None, help="Bind address")
    p.add_argument("--port", type=int, default=None, help="Listen port")
    p.add_argument(
        "--store",
        default=None,
        help="Snapshot store: directory, file:// URL or mongodb:// URI (empty for memory)",
    )
    p.add_argument("--admin-key", default=None, help="Admin key for the /admin endpoints")

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def load_config(args: argparse.Namespace, environ=None) -> HubRuntimeConfig:
    environ = os.environ if environ is None else environ
    config_path = str(args.config)

    cfg = HubRuntimeConfig(config_path=config_path)
    if config_path and os.path.exists(config_path):
        cfg = apply_config_data(cfg, _load_toml(config_path))

    cfg = apply_env(cfg, environ)

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.store is not None:
        cfg = replace(cfg, store_url=str(args.store))
    if args.admin_key is not None:
        cfg = replace(cfg, admin_key=str(args.admin_key) or None)
    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    if config_path and not os.path.exists(config_path):
        _write_default_config(config_path)
        print(f"Created default wavechat config: {config_path}", file=sys.stderr)

    cfg = load_config(args)
    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    from .server import create_app

    uvicorn.run(create_app(cfg), host=cfg.host, port=int(cfg.port), log_config=None)


if __name__ == "__main__":
    main()
