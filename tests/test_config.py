import argparse
import logging

import pytest

from wavechat.cli import _write_default_config, load_config
from wavechat.config import HubRuntimeConfig, apply_config_data, apply_env
from wavechat.logging_config import configure_logging, parse_level
from wavechat.paths import default_config_path, default_data_dir, ensure_private_dir


def test_apply_config_data_maps_tables() -> None:
    data = {
        "hub": {"port": 8080, "admin_key": "", "cors_origins": ["https://a.example"]},
        "logging": {"level": "DEBUG", "file": ""},
        "unknown": 1,
    }
    cfg = apply_config_data(HubRuntimeConfig(), data)
    assert cfg.port == 8080
    assert cfg.admin_key is None
    assert cfg.cors_origins == ("https://a.example",)
    assert cfg.log_level == "DEBUG"
    assert cfg.log_file is None


def test_config_path_is_not_overridden() -> None:
    cfg = apply_config_data(HubRuntimeConfig(config_path="/etc/x.toml"), {"config_path": "/tmp/y"})
    assert cfg.config_path == "/etc/x.toml"


def test_apply_env() -> None:
    cfg = apply_env(
        HubRuntimeConfig(),
        {"ADMIN_KEY": "k", "MONGODB_URI": "mongodb://db:27017", "PORT": "4000"},
    )
    assert cfg.admin_key == "k"
    assert cfg.store_url == "mongodb://db:27017"
    assert cfg.port == 4000

    with pytest.raises(ValueError):
        apply_env(HubRuntimeConfig(), {"PORT": "http"})


def test_default_config_file_loads(tmp_path) -> None:
    path = str(tmp_path / "home" / "wavechat.toml")
    _write_default_config(path)

    args = argparse.Namespace(
        config=path, host=None, port=5000, store="", admin_key=None, log_level=None, log_file=None
    )
    cfg = load_config(args, environ={"ADMIN_KEY": "from-env"})
    assert cfg.port == 5000
    assert cfg.store_url == ""
    assert cfg.admin_key == "from-env"
    assert cfg.admin_nickname == "mefisto"
    assert cfg.retention_s == 86400.0


def test_configure_logging_sets_levels(tmp_path) -> None:
    log_file = tmp_path / "wavechat.log"
    cfg = HubRuntimeConfig(log_level="DEBUG", log_console=False, log_file=str(log_file))
    configure_logging(cfg)
    try:
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("uvicorn").level == logging.WARNING
        logging.getLogger("wavechat.test").info("hello")
        for h in logging.getLogger().handlers:
            h.flush()
        assert "hello" in log_file.read_text(encoding="utf-8")
    finally:
        for h in list(logging.getLogger().handlers):
            logging.getLogger().removeHandler(h)
            h.close()


@pytest.mark.parametrize(
    "value, expected",
    [("debug", logging.DEBUG), ("warn", logging.WARNING), ("15", 15), (None, logging.INFO), ("loud", logging.INFO)],
)
def test_parse_level(value, expected) -> None:
    assert parse_level(value, logging.INFO) == expected


def test_home_directory_layout(tmp_path) -> None:
    env = {"WAVECHAT_HOME": str(tmp_path / "home")}
    assert default_config_path(env) == tmp_path / "home" / "wavechat.toml"
    assert default_data_dir(env) == tmp_path / "home" / "data"
    assert default_config_path({}).parent.name == ".wavechat"

    made = ensure_private_dir(tmp_path / "a" / "b")
    assert made.is_dir()
    assert made.stat().st_mode & 0o777 == 0o700
