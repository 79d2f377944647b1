"""
Sales Kernel

The sale-to-cash core shared by every module:
- Exact two-decimal Money arithmetic
- Table-driven state machines
- Typed, coded exceptions
- Structured logging
- Persistence base and folio sequences
"""

__version__ = "0.1.0"
