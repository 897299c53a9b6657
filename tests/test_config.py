from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import pytest

from fortune.config.load_config import (
    DEFAULTS,
    ConfigError,
    FortuneOptions,
    load_app_config,
    load_options_from_env,
    merge_options,
)


def test_defaults_apply_when_nothing_given() -> None:
    opts = merge_options(None)
    assert opts.adapter == "sqlite"
    assert opts.host == "localhost"
    assert opts.port is None
    assert opts.db == "fortune"
    assert opts.flags == {}
    assert opts.namespace == ""
    assert opts.cors is True
    assert opts.production is False
    assert opts.cors_enabled


def test_given_values_win_including_falsy_ones() -> None:
    opts = merge_options({"cors": False, "db": "", "adapter": "memory", "port": 0})
    assert opts.cors is False
    assert not opts.cors_enabled
    assert opts.db == ""
    assert opts.adapter == "memory"
    assert opts.port == 0
    # untouched keys still default
    assert opts.host == "localhost"
    assert opts.production is False


def test_non_mapping_input_is_treated_as_empty() -> None:
    assert merge_options("nope") == merge_options({})  # type: ignore[arg-type]


def test_existing_options_pass_through() -> None:
    opts = FortuneOptions(adapter="memory")
    assert merge_options(opts) is opts


def test_flags_default_is_not_shared() -> None:
    a = merge_options({})
    a.flags["x"] = 1
    assert DEFAULTS["flags"] == {}
    assert merge_options({}).flags == {}


def test_namespace_and_base_url_are_normalized() -> None:
    opts = merge_options({"namespace": "api/v1/", "baseUrl": "http://example.test/"})
    assert opts.namespace == "/api/v1"
    assert opts.base_url == "http://example.test"


def test_unknown_option_is_ignored_with_warning(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="fortune.config.load_config"):
        opts = merge_options({"colour": "blue"})
    assert not hasattr(opts, "colour")
    assert any("colour" in r.getMessage() for r in caplog.records)


def test_cors_mapping_enables_cors() -> None:
    assert merge_options({"cors": {"origins": ["http://a.test"]}}).cors_enabled
    assert not merge_options({"cors": {}}).cors_enabled


def test_options_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for k in list(os.environ):
        if k.startswith("FORTUNE_"):
            monkeypatch.delenv(k)
    monkeypatch.setenv("FORTUNE_ADAPTER", "memory")
    monkeypatch.setenv("FORTUNE_DB_PORT", "5432")
    monkeypatch.setenv("FORTUNE_PRODUCTION", "yes")
    monkeypatch.setenv("FORTUNE_CORS", "off")
    assert load_options_from_env() == {"adapter": "memory", "port": 5432, "production": True, "cors": False}


def test_options_from_env_rejects_bad_bool(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FORTUNE_PRODUCTION", "maybe")
    with pytest.raises(ConfigError):
        load_options_from_env()


_TOML = """
[fortune]
namespace = "api"
production = "true"

[database]
adapter = "memory"
port = "27017"

[resources.person]
name = "string"
pets = [{ ref = "pet", inverse = "owner" }]

[resources.pet]
name = "string"
owner = { ref = "person", inverse = "pets" }

[resources.pet._options]
read_only = true
"""


def test_load_app_config_reads_options_and_resources() -> None:
    with tempfile.TemporaryDirectory() as td:
        path = Path(td) / "fortune.toml"
        path.write_text(_TOML, encoding="utf-8")
        cfg = load_app_config(path)

    assert cfg.options == {"namespace": "api", "production": True, "adapter": "memory", "port": 27017}
    by_name = {r.name: r for r in cfg.resources}
    assert set(by_name) == {"person", "pet"}
    assert by_name["person"].schema["pets"] == [{"ref": "pet", "inverse": "owner"}]
    assert by_name["pet"].read_only is True
    assert by_name["pet"].no_index is False
    assert "_options" not in by_name["pet"].schema


def test_load_app_config_missing_file() -> None:
    with tempfile.TemporaryDirectory() as td:
        with pytest.raises(ConfigError):
            load_app_config(Path(td) / "missing.toml")


def test_load_app_config_invalid_toml() -> None:
    with tempfile.TemporaryDirectory() as td:
        path = Path(td) / "broken.toml"
        path.write_text("[fortune\nnamespace=", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_app_config(path)
