"""
Configuration Loader (``dues_kernel.config``).

Responsibility
--------------
Loads the ledger's YAML configuration and parses it into frozen dataclass
instances.  ``load_config()`` is the single entry point; no other component
reads configuration files or environment variables.

Source order
------------
1. An explicit ``path`` argument.
2. The ``DUES_CONFIG`` environment variable.
3. The packaged ``defaults.yaml``.

``DUES_DATABASE_URL`` overrides ``database.url`` from whichever file won.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from dues_kernel.logging_config import get_logger

logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_ENV_VAR = "DUES_CONFIG"
DATABASE_URL_ENV_VAR = "DUES_DATABASE_URL"


@dataclass(frozen=True)
class TransactionConfig:
    max_retries: int
    retry_backoff_seconds: float


@dataclass(frozen=True)
class SettingsDefaults:
    """Fallback values seeded into SystemSettings before the first rollover."""

    academic_year: str
    semester_number: int
    dues_amount: Decimal


@dataclass(frozen=True)
class HallSeed:
    id: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class DuesConfig:
    database_url: str
    echo: bool
    transaction: TransactionConfig
    defaults: SettingsDefaults
    halls: tuple[HallSeed, ...]


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a YAML scalar into a Decimal; floats go through str() first."""
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field}: cannot parse amount from {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"{field}: amount must be finite, got {value!r}")
    return result


def parse_transaction(data: dict[str, Any]) -> TransactionConfig:
    max_retries = int(data["max_retries"])
    if max_retries < 0:
        raise ValueError(f"transaction.max_retries must be >= 0, got {max_retries}")
    return TransactionConfig(
        max_retries=max_retries,
        retry_backoff_seconds=float(data["retry_backoff_seconds"]),
    )


def parse_defaults(data: dict[str, Any]) -> SettingsDefaults:
    semester_number = int(data["semester_number"])
    if semester_number not in (1, 2):
        raise ValueError(f"defaults.semester_number must be 1 or 2, got {semester_number}")
    return SettingsDefaults(
        academic_year=str(data["academic_year"]),
        semester_number=semester_number,
        dues_amount=parse_decimal(data["dues_amount"], "defaults.dues_amount"),
    )


def parse_hall(data: dict[str, Any]) -> HallSeed:
    return HallSeed(
        id=str(data["id"]),
        name=str(data["name"]),
        description=str(data.get("description", "")),
    )


def parse_config(data: dict[str, Any]) -> DuesConfig:
    """Parse a raw YAML mapping into a DuesConfig."""
    database = data["database"]
    return DuesConfig(
        database_url=str(database["url"]),
        echo=bool(database.get("echo", False)),
        transaction=parse_transaction(data["transaction"]),
        defaults=parse_defaults(data["defaults"]),
        halls=tuple(parse_hall(h) for h in data.get("halls", ())),
    )


def load_config(path: Path | str | None = None) -> DuesConfig:
    """
    Load the ledger configuration.

    Args:
        path: Explicit YAML file; falls back to $DUES_CONFIG, then defaults.yaml.

    Returns:
        Parsed, frozen DuesConfig.
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    path = Path(path)

    config = parse_config(load_yaml_file(path))

    url_override = os.environ.get(DATABASE_URL_ENV_VAR)
    if url_override:
        config = DuesConfig(
            database_url=url_override,
            echo=config.echo,
            transaction=config.transaction,
            defaults=config.defaults,
            halls=config.halls,
        )

    logger.info(
        "config_loaded",
        extra={
            "config_path": str(path),
            "hall_count": len(config.halls),
            "database_url_overridden": bool(url_override),
        },
    )
    return config
