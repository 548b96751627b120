"""
Workbook-Diff: cell-level comparison of spreadsheet workbook snapshots.

This package compares a "current" and a "baseline" snapshot of a workbook
and reports, per cell, whether content was added, removed, recalculated or
edited. Differences are also decomposed into rectangles so that an overlay
renderer can highlight them with as few formatting calls as possible.

Architecture:
    - Pure comparison core (src.core) with no I/O
    - Hexagonal/Service Layer pattern for clean separation of concerns
    - openpyxl / python-calamine for importing snapshots from files
    - XlsxWriter for writing highlighted diff reports
    - Dual protocol: OpenAPI (REST via FastAPI) and MCP
"""

__version__ = "0.1.0"
__author__ = "Jeff"
