from pathlib import Path

import pytest

from cashsight.config import load_app_config


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "cashsight_config.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_full_config(tmp_path):
    path = _write(
        tmp_path,
        """
[company]
default_id = 7

[database]
engine = "sqlite"
path = "db/app.sqlite"

[cashflow]
default_period = "next90Days"

[ai]
provider = "live"
model = "some-model"
api_key_env = "MY_KEY"
timeout = 5

[display]
mode = "both"
currency = "EUR"
decimals = 1

[logging]
level = "debug"
""",
    )

    cfg = load_app_config(str(path))

    assert cfg.default_company_id == 7
    assert cfg.database.path == (tmp_path / "db" / "app.sqlite").resolve()
    assert cfg.default_period == "next90Days"
    assert cfg.ai.provider == "live"
    assert cfg.ai.model == "some-model"
    assert cfg.ai.api_key_env == "MY_KEY"
    assert cfg.ai.timeout == pytest.approx(5.0)
    assert cfg.display_mode == "both"
    assert cfg.currency == "EUR"
    assert cfg.decimals == 1
    assert cfg.log_level == "DEBUG"


def test_empty_config_uses_defaults(tmp_path):
    cfg = load_app_config(str(_write(tmp_path, "")))

    assert cfg.default_company_id == 1
    assert cfg.database.engine == "sqlite"
    assert cfg.database.path.name == "cashsight.sqlite"
    assert cfg.default_period == "last30Days"
    assert cfg.ai.provider == "mock"
    assert cfg.display_mode == "table"
    assert cfg.currency == "BRL"
    assert cfg.log_level == "WARNING"


def test_default_path_is_current_directory(tmp_path, monkeypatch):
    _write(tmp_path, "[company]\ndefault_id = 2\n")
    monkeypatch.chdir(tmp_path)

    assert load_app_config().default_company_id == 2


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_app_config(str(tmp_path / "nope.toml"))


@pytest.mark.parametrize(
    "text",
    [
        "this is = = not toml",
        '[ai]\nprovider = "oracle"\n',
        '[cashflow]\ndefault_period = "nextCentury"\n',
        '[display]\nmode = "html"\n',
        '[company]\ndefault_id = "abc"\n',
        '[display]\ndecimals = "two"\n',
        '[display]\ndecimals = -1\n',
        '[logging]\nlevel = "LOUD"\n',
    ],
)
def test_invalid_config_raises_value_error(tmp_path, text):
    with pytest.raises(ValueError):
        load_app_config(str(_write(tmp_path, text)))
