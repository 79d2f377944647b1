"""
Module ORM Registry (``sales_modules._orm_registry``).

Responsibility
--------------
Ensure all module-level SQLAlchemy ORM models are imported so that
``Base.metadata`` contains their table definitions before tables are
created.  ``create_all_tables()`` is the one entry point scripts and
``tests/conftest.py`` use to get a complete schema.
"""


def import_all_orm_models() -> None:
    """Import kernel tables and every ``sales_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    import sales_kernel.services.sequence_service  # noqa: F401
    # fmt: off
    import sales_modules.sales.orm  # noqa: F401
    import sales_modules.receivables.orm  # noqa: F401
    import sales_modules.payments.orm  # noqa: F401
    import sales_services.orm  # noqa: F401
    # fmt: on


def create_all_tables() -> None:
    """Register every ORM model, then create all tables on the active engine."""
    from sales_kernel.db.engine import create_tables

    create_tables()
