# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for CashSight.

This module is responsible for:
- loading the main application configuration from a TOML file,
- exposing typed dataclasses used by the rest of the application.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import tomllib

from .ai_client import DEFAULT_ENDPOINT, DEFAULT_MODEL, PROVIDERS, AIConfig
from .db import DatabaseConfig
from .periods import PRESET_LABELS

DEFAULT_CONFIG_FILE = "cashsight_config.toml"
DISPLAY_MODES = ("table", "csv", "both")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for CashSight.

    This aggregates:
    - the default company (tenant) used by the CLI,
    - the database configuration (where transactions are stored),
    - the default cash-flow period,
    - the AI evaluator settings,
    - display options for tables and CSV exports,
    - the logging level.
    """

    default_company_id: int
    database: DatabaseConfig
    default_period: str
    ai: AIConfig
    display_mode: str
    currency: str
    decimals: int
    log_level: str


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, Mapping):
        return {}
    return section


def _parse_ai_config(section: Mapping[str, Any]) -> AIConfig:
    """
    Build the AIConfig from the [ai] table.

    Raises:
        ValueError: for an unknown provider or non-numeric timeout /
            temperature.
    """
    provider = str(section.get("provider", "mock")).lower()
    if provider not in PROVIDERS:
        raise ValueError(
            f"Invalid value for 'ai.provider': {provider!r}. "
            f"Expected one of {', '.join(PROVIDERS)}."
        )

    try:
        timeout = float(section.get("timeout", 30.0))
        temperature = float(section.get("temperature", 0.2))
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'ai.timeout' or 'ai.temperature'. Expected numbers."
        ) from exc

    return AIConfig(
        provider=provider,
        endpoint=str(section.get("endpoint") or DEFAULT_ENDPOINT),
        model=str(section.get("model") or DEFAULT_MODEL),
        api_key_env=str(section.get("api_key_env") or "GEMINI_API_KEY"),
        timeout=timeout,
        temperature=temperature,
    )


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the CashSight application configuration from a TOML file.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [company]
        ``default_id``: company used when the CLI gets no --company.

    [database]
        Database engine and SQLite file path.

    [cashflow]
        ``default_period``: period preset used when none is requested.

    [ai]
        Prompt evaluator selection ("mock" or "live") and HTTP settings.
        The API key itself is never stored in the file; ``api_key_env``
        names the environment variable holding it.

    [display]
        Display mode (table, csv, both), currency code and decimals.

    [logging]
        Root logging level.

    Every section is optional. All file paths in the TOML are resolved
    relative to the directory of the TOML file itself.

    Parameters
    ----------
    config_path : str, optional
        Path to the TOML configuration file. Defaults to
        ``cashsight_config.toml`` in the current directory.

    Returns
    -------
    AppConfig
        Parsed and validated application configuration.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If the file cannot be parsed or holds invalid values.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent

    # 1) Company
    company_section = _section(raw, "company")
    try:
        default_company_id = int(company_section.get("default_id", 1))
    except (TypeError, ValueError) as exc:
        raise ValueError(
            "Invalid value for 'company.default_id'. Expected an integer."
        ) from exc

    # 2) Database
    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    db_path_raw = database_section.get("path") or "data/db/cashsight.sqlite"
    db_path = (base_dir / str(db_path_raw)).resolve()
    database_config = DatabaseConfig(engine=db_engine, path=db_path)

    # 3) Cash flow
    cashflow_section = _section(raw, "cashflow")
    default_period = str(cashflow_section.get("default_period", "last30Days"))
    if default_period not in PRESET_LABELS:
        raise ValueError(
            f"Invalid value for 'cashflow.default_period': {default_period!r}."
        )

    # 4) AI evaluator
    ai_config = _parse_ai_config(_section(raw, "ai"))

    # 5) Display options
    display_section = _section(raw, "display")
    display_mode = str(display_section.get("mode", "table"))
    if display_mode not in DISPLAY_MODES:
        raise ValueError(f"Invalid value for 'display.mode': {display_mode!r}.")
    currency = str(display_section.get("currency", "BRL"))
    decimals_raw = display_section.get("decimals", 2)
    if (
        isinstance(decimals_raw, bool)
        or not isinstance(decimals_raw, int)
        or decimals_raw < 0
    ):
        raise ValueError(f"Invalid value for 'display.decimals': {decimals_raw!r}.")
    decimals = decimals_raw

    # 6) Logging
    logging_section = _section(raw, "logging")
    log_level = str(logging_section.get("level", "WARNING")).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"Invalid value for 'logging.level': {log_level!r}.")

    return AppConfig(
        default_company_id=default_company_id,
        database=database_config,
        default_period=default_period,
        ai=ai_config,
        display_mode=display_mode,
        currency=currency,
        decimals=decimals,
        log_level=log_level,
    )
