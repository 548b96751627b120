"""
Adapters for Excel file operations.

Implements the adapter pattern for different Excel engines:
- OpenpyxlAdapter: Snapshot import with formulas and cached values (openpyxl)
- CalamineAdapter: High-performance, values-only snapshot import (python-calamine)
- XlsxWriterAdapter: Snapshot and highlighted diff report writing (XlsxWriter)
"""

from src.adapters.calamine_adapter import CalamineAdapter
from src.adapters.openpyxl_adapter import OpenpyxlAdapter
from src.adapters.xlsxwriter_adapter import XlsxWriterAdapter

__all__ = [
    "CalamineAdapter",
    "XlsxWriterAdapter",
    "OpenpyxlAdapter",
]
