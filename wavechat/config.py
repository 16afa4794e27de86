from __future__ import annotations

from dataclasses import asdict, dataclass, replace


@dataclass(frozen=True)
class HubRuntimeConfig:
    config_path: str | None = None
    host: str = "0.0.0.0"
    port: int = 3000
    # "" keeps everything in memory; a path or file:// URL selects the file
    # store; mongodb:// or mongodb+srv:// selects MongoDB.
    store_url: str = ""
    store_db_name: str = "wave-chat"
    snapshot_key: str = "chatData"
    cache_key: str = "waveCache"
    admin_key: str | None = None
    admin_nickname: str = "mefisto"
    session_cookie: str = "chatSession"
    trust_proxy_headers: bool = True
    cors_origins: tuple[str, ...] = ("*",)
    nick_min_chars: int = 3
    nick_max_chars: int = 20
    message_max_chars: int = 100
    retention_s: float = 24 * 3600.0
    sweep_interval_s: float = 60.0
    snapshot_interval_s: float = 300.0
    stats_interval_s: float = 60.0
    persist_every_messages: int = 10
    snapshot_max_messages: int = 1000
    device_code_len: int = 4
    device_code_max_attempts: int = 100
    device_code_fallback_len: int = 8
    log_level: str = "INFO"
    log_library_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    log_datefmt: str | None = None


_LOGGING_KEYS = {
    "level": "log_level",
    "library_level": "log_library_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}

_OPTIONAL_STR_KEYS = ("admin_key", "log_file", "log_datefmt")


def apply_config_data(base: HubRuntimeConfig, data: dict) -> HubRuntimeConfig:
    """Overlay a parsed TOML document onto a config.

    Keys may live at the top level or under [hub]; [logging] keys are mapped
    onto the log_* fields. Unknown keys are ignored.
    """
    hub = data.get("hub") if isinstance(data, dict) else None
    if isinstance(hub, dict):
        data = {**data, **hub}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped = {
            field: log_table.get(key)
            for key, field in _LOGGING_KEYS.items()
            if key in log_table
        }
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the config was read from; do not let the file override it.
    allowed.discard("config_path")

    updates = {k: v for k, v in data.items() if k in allowed}

    if "cors_origins" in updates and isinstance(updates["cors_origins"], list):
        updates["cors_origins"] = tuple(str(x) for x in updates["cors_origins"])
    for key in _OPTIONAL_STR_KEYS:
        if key in updates and updates[key] == "":
            updates[key] = None

    return replace(base, **updates) if updates else base


def apply_env(base: HubRuntimeConfig, environ: dict[str, str]) -> HubRuntimeConfig:
    updates: dict[str, object] = {}

    admin_key = environ.get("ADMIN_KEY")
    if admin_key:
        updates["admin_key"] = admin_key

    mongo_uri = environ.get("MONGODB_URI")
    if mongo_uri:
        updates["store_url"] = mongo_uri

    port = environ.get("PORT")
    if port:
        try:
            updates["port"] = int(port)
        except ValueError:
            raise ValueError(f"invalid PORT {port!r}") from None

    return replace(base, **updates) if updates else base
