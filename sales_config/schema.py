"""
Sales configuration schema.

Frozen dataclasses parsed from YAML by ``sales_config.loader``.  Every
field has a default so that an empty (or absent) file yields a complete,
usable configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for ``init_engine_from_url``."""

    url: str = "sqlite:///sales.db"
    echo: bool = False


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class ReceivablesConfig:
    """Defaults for ledger entries opened from a confirmed sale."""

    default_credit_days: int = 30


@dataclass(frozen=True)
class FolioConfig:
    """Folio prefixes per aggregate and the zero-padded sequence width."""

    sale_prefix: str = "VTA"
    receivable_prefix: str = "CXC"
    payable_prefix: str = "CXP"
    payment_prefix: str = "PAG"
    sequence_width: int = 4


@dataclass(frozen=True)
class SalesConfig:
    """Root configuration object returned by ``get_active_config()``."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    receivables: ReceivablesConfig = field(default_factory=ReceivablesConfig)
    folios: FolioConfig = field(default_factory=FolioConfig)
    source: str | None = None
