"""
MCP (Model Context Protocol) server for workbook comparison.

This module implements an MCP server that exposes workbook diff operations
as tools that can be called by AI agents. It provides the same
functionality as the REST API but through the MCP protocol.

MCP Tools:
    - diff_files: Diff two workbook files
    - diff_snapshot: Diff a workbook file against a stored snapshot
    - get_diff_rectangles: Rectangle decomposition of one sheet
    - explain_cell: Old/new detail of one cell
    - export_diff_report: Write a highlighted diff report
    - save_snapshot: Store a workbook file as a snapshot
    - list_snapshots: List stored snapshots
    - delete_snapshot: Delete a stored snapshot

Example:
    To run the MCP server:
        python -m src.mcp_server

    Or programmatically:
        from src.mcp_server import run_mcp_server
        run_mcp_server()
"""

import asyncio
import json
import logging
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
)
from pydantic import ValidationError

from src.config import configure_logging, get_settings
from src.exceptions.diff_exceptions import WorkbookDiffError
from src.models.api_models import (
    CellDetailRequest,
    DiffFilesRequest,
    ExportReportRequest,
    RectanglesRequest,
    SaveSnapshotRequest,
    SnapshotDiffRequest,
)
from src.services.diff_service import WorkbookDiffService

logger = logging.getLogger(__name__)

_ENGINE_PROPERTY = {
    "type": "string",
    "enum": ["openpyxl", "calamine"],
    "description": (
        "Import engine: openpyxl sees formulas and cached values, calamine is "
        "faster but values-only (optional, defaults to the configured engine)"
    ),
}

_DIFF_OUTPUT_PROPERTIES = {
    "include_cells": {
        "type": "boolean",
        "description": "Include the base64 one-byte-per-cell code grid for each sheet",
        "default": False,
    },
    "include_rectangles": {
        "type": "boolean",
        "description": "Include absolute changed rectangles per code for each sheet",
        "default": False,
    },
}


class MCPDiffServer:
    """
    MCP server implementation for workbook comparison.

    This class wraps the WorkbookDiffService and exposes it through the
    MCP protocol, allowing AI agents to compare workbooks using
    standardized tool calls.

    The server implements:
        - list_tools: Returns available diff operations as MCP tools
        - call_tool: Executes a specific diff operation

    Attributes:
        service: The underlying WorkbookDiffService instance.
        server: The MCP Server instance.

    Example:
        mcp_server = MCPDiffServer()
        await mcp_server.run()
    """

    def __init__(self, service: WorkbookDiffService | None = None) -> None:
        """
        Initialize the MCP diff server.

        Args:
            service: Optional WorkbookDiffService instance. If None, creates a new one.
        """
        self.service = service or WorkbookDiffService()
        self.server = Server("workbook-diff-mcp-server")
        self._setup_handlers()

    def _setup_handlers(self) -> None:
        """Set up MCP request handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """Return the list of available diff tools."""
            return self._get_tools()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Execute a tool and return the result."""
            result = await self._execute_tool(name, arguments)
            return [TextContent(type="text", text=json.dumps(result, default=str, indent=2))]

    def _get_tools(self) -> list[Tool]:
        """
        Get the list of available diff tools.

        Returns:
            List of MCP Tool definitions.
        """
        return [
            Tool(
                name="diff_files",
                description=(
                    "Compare two Excel workbooks cell by cell. Every cell is classified "
                    "as added, removed, value_changed (same formula, new result) or "
                    "formula_changed (formula or literal edited). Returns per-sheet "
                    "status and counts plus workbook totals."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "current_path": {
                            "type": "string",
                            "description": "Path to the current (newer) workbook",
                        },
                        "baseline_path": {
                            "type": "string",
                            "description": "Path to the baseline (older) workbook",
                        },
                        "engine": _ENGINE_PROPERTY,
                        **_DIFF_OUTPUT_PROPERTIES,
                    },
                    "required": ["current_path", "baseline_path"],
                },
            ),
            Tool(
                name="diff_snapshot",
                description=(
                    "Compare an Excel workbook against a stored snapshot (see save_snapshot)."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "snapshot_id": {
                            "type": "string",
                            "description": "Id of the baseline snapshot",
                        },
                        "current_path": {
                            "type": "string",
                            "description": "Path to the current workbook",
                        },
                        "engine": _ENGINE_PROPERTY,
                        **_DIFF_OUTPUT_PROPERTIES,
                    },
                    "required": ["snapshot_id", "current_path"],
                },
            ),
            Tool(
                name="get_diff_rectangles",
                description=(
                    "Group one sheet's changed cells into rectangles, returned with "
                    "A1 addresses per change kind (e.g. 'B2:D4')."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "current_path": {
                            "type": "string",
                            "description": "Path to the current workbook",
                        },
                        "baseline_path": {
                            "type": "string",
                            "description": "Path to the baseline workbook",
                        },
                        "sheet_name": {
                            "type": "string",
                            "description": "Sheet to decompose",
                        },
                        "code": {
                            "type": "string",
                            "enum": ["added", "removed", "value_changed", "formula_changed"],
                            "description": "Only this change kind (optional, defaults to all)",
                        },
                        "absolute": {
                            "type": "boolean",
                            "description": "Use absolute sheet coordinates",
                            "default": True,
                        },
                        "engine": _ENGINE_PROPERTY,
                    },
                    "required": ["current_path", "baseline_path", "sheet_name"],
                },
            ),
            Tool(
                name="explain_cell",
                description=(
                    "Show how a single cell changed: its change kind and the old and new "
                    "text (formula text where the cell has a formula)."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "current_path": {
                            "type": "string",
                            "description": "Path to the current workbook",
                        },
                        "baseline_path": {
                            "type": "string",
                            "description": "Path to the baseline workbook",
                        },
                        "sheet_name": {
                            "type": "string",
                            "description": "Sheet containing the cell",
                        },
                        "cell": {
                            "type": "string",
                            "description": "Cell reference in A1 notation (e.g., 'B2')",
                        },
                        "engine": _ENGINE_PROPERTY,
                    },
                    "required": ["current_path", "baseline_path", "sheet_name", "cell"],
                },
            ),
            Tool(
                name="export_diff_report",
                description=(
                    "Write the current workbook to a new .xlsx file with every change "
                    "highlighted (green added, red removed, yellow value changed, orange "
                    "formula changed), colored sheet tabs and a summary sheet."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "current_path": {
                            "type": "string",
                            "description": "Path to the current workbook",
                        },
                        "baseline_path": {
                            "type": "string",
                            "description": "Path to the baseline workbook",
                        },
                        "output_path": {
                            "type": "string",
                            "description": "Path where the report will be written",
                        },
                        "overwrite": {
                            "type": "boolean",
                            "description": "Whether to overwrite an existing file",
                            "default": False,
                        },
                        "engine": _ENGINE_PROPERTY,
                    },
                    "required": ["current_path", "baseline_path", "output_path"],
                },
            ),
            Tool(
                name="save_snapshot",
                description=(
                    "Capture an Excel workbook as a stored snapshot to compare later "
                    "versions against."
                ),
                inputSchema={
                    "type": "object",
                    "properties": {
                        "file_path": {
                            "type": "string",
                            "description": "Path to the workbook",
                        },
                        "name": {
                            "type": "string",
                            "description": "Snapshot name (optional, defaults to the file name)",
                        },
                        "workbook_id": {
                            "type": "string",
                            "description": "Groups snapshots of one workbook (optional)",
                        },
                        "engine": _ENGINE_PROPERTY,
                    },
                    "required": ["file_path"],
                },
            ),
            Tool(
                name="list_snapshots",
                description="List stored snapshots, newest first.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "workbook_id": {
                            "type": "string",
                            "description": "Only this workbook's snapshots (optional)",
                        },
                    },
                    "required": [],
                },
            ),
            Tool(
                name="delete_snapshot",
                description="Delete a stored snapshot.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "snapshot_id": {
                            "type": "string",
                            "description": "Id of the snapshot to delete",
                        },
                    },
                    "required": ["snapshot_id"],
                },
            ),
        ]

    async def _execute_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """
        Execute a tool by name with the given arguments.

        Args:
            name: The name of the tool to execute.
            arguments: The arguments to pass to the tool.

        Returns:
            Dictionary containing the tool execution result.
        """
        try:
            if name == "diff_files":
                result = self.service.diff_files(DiffFilesRequest(**arguments))
                return {"success": True, "data": result.model_dump(mode="json")}

            elif name == "diff_snapshot":
                options = {k: v for k, v in arguments.items() if k != "snapshot_id"}
                result = self.service.diff_against_snapshot(
                    arguments["snapshot_id"],
                    SnapshotDiffRequest(**options),
                )
                return {"success": True, "data": result.model_dump(mode="json")}

            elif name == "get_diff_rectangles":
                result = self.service.get_rectangles(RectanglesRequest(**arguments))
                return {"success": True, "data": result.model_dump(mode="json")}

            elif name == "explain_cell":
                result = self.service.explain_cell(CellDetailRequest(**arguments))
                return {"success": True, "data": result.model_dump(mode="json")}

            elif name == "export_diff_report":
                result = self.service.export_report(ExportReportRequest(**arguments))
                return {"success": True, "data": result.model_dump(mode="json")}

            elif name == "save_snapshot":
                result = self.service.save_snapshot(SaveSnapshotRequest(**arguments))
                return {"success": True, "data": result.model_dump(mode="json")}

            elif name == "list_snapshots":
                records = self.service.list_snapshots(arguments.get("workbook_id"))
                return {
                    "success": True,
                    "data": {"snapshots": [record.model_dump(mode="json") for record in records]},
                }

            elif name == "delete_snapshot":
                self.service.delete_snapshot(arguments["snapshot_id"])
                return {"success": True, "data": {"id": arguments["snapshot_id"]}}

            else:
                return {
                    "success": False,
                    "error": {
                        "error_code": "UNKNOWN_TOOL",
                        "message": f"Unknown tool: {name}",
                    },
                }

        except WorkbookDiffError as e:
            return {
                "success": False,
                "error": e.to_dict(),
            }
        except (ValidationError, KeyError) as e:
            return {
                "success": False,
                "error": {
                    "error_code": "INVALID_ARGUMENTS",
                    "message": str(e),
                },
            }
        except Exception as e:
            logger.exception("Tool %s failed", name)
            return {
                "success": False,
                "error": {
                    "error_code": "INTERNAL_ERROR",
                    "message": str(e),
                },
            }

    async def run(self) -> None:
        """
        Run the MCP server using stdio transport.

        This method starts the server and blocks until it is terminated.
        It uses stdin/stdout for communication with the MCP client, so
        logging goes to stderr.
        """
        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )


def run_mcp_server() -> None:
    """
    Run the MCP diff server.

    This is the entry point for running the MCP server from the command line.
    It configures logging and creates an MCPDiffServer instance.

    Example:
        python -m src.mcp_server
    """
    configure_logging(get_settings().log_level_int)
    server = MCPDiffServer()
    asyncio.run(server.run())


if __name__ == "__main__":
    run_mcp_server()
