"""
sales_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain configuration.
    Resolution order: explicit ``path`` argument, then the
    ``SALES_CONFIG_PATH`` environment variable, then built-in defaults.

Failure modes:
    - ``FileNotFoundError`` -- an explicit path (argument or environment)
      does not exist.
    - ``ValueError`` -- schema validation failures.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from sales_config.loader import load_config
from sales_config.schema import (
    DatabaseConfig,
    FolioConfig,
    LoggingConfig,
    ReceivablesConfig,
    SalesConfig,
)

_logger = logging.getLogger("sales_kernel.config")

CONFIG_PATH_ENV = "SALES_CONFIG_PATH"


def get_active_config(path: Path | str | None = None) -> SalesConfig:
    """Resolve and return the active configuration.

    Emits a ``sales_config_loaded`` log entry naming the source.
    """
    resolved = path if path is not None else os.environ.get(CONFIG_PATH_ENV)
    if resolved:
        config = load_config(Path(resolved))
    else:
        config = SalesConfig()

    _logger.info(
        "sales_config_loaded",
        extra={
            "source": config.source or "defaults",
            "default_credit_days": config.receivables.default_credit_days,
        },
    )
    return config


__all__ = [
    "CONFIG_PATH_ENV",
    "DatabaseConfig",
    "FolioConfig",
    "LoggingConfig",
    "ReceivablesConfig",
    "SalesConfig",
    "get_active_config",
]
