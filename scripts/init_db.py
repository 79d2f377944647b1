#!/usr/bin/env python3
"""
Create the sales schema on the configured database, optionally dropping it
first.  Configuration-driven: the database URL, echo flag and log level
come from the active configuration (--config, else SALES_CONFIG_PATH,
else the built-in defaults).

Usage:
  python3 scripts/init_db.py [--config sales.yaml] [--db-url URL] [--reset]
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create the sales tables from the active configuration")
    p.add_argument(
        "--config",
        default=None,
        help="YAML configuration file (default: SALES_CONFIG_PATH, or built-in defaults)",
    )
    p.add_argument(
        "--db-url",
        default=None,
        help="Database URL (overrides database.url from the configuration)",
    )
    p.add_argument(
        "--reset",
        action="store_true",
        help="Drop every sales table before creating the schema",
    )
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    import yaml

    from sales_config import get_active_config
    from sales_kernel.db.engine import drop_tables, init_engine_from_url
    from sales_kernel.logging_config import configure_logging
    from sales_modules._orm_registry import create_all_tables, import_all_orm_models

    try:
        config = get_active_config(args.config)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    configure_logging(level=config.logging.level)
    db_url = args.db_url or config.database.url

    print()
    print(f"  [1/2] Connecting to {db_url} ...")
    try:
        init_engine_from_url(db_url, echo=config.database.echo)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    if args.reset:
        print("        Dropping existing tables...")
        import_all_orm_models()
        drop_tables()

    print("  [2/2] Creating schema...")
    create_all_tables()
    print("  Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
