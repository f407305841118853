"""Command-line interface for outlook-mail-mcp.

Provides commands for:
- serve: Run the MCP server (default)
- status: Show configuration and whether an access token is available

Usage:
    outlook-mail-mcp              # Run MCP server (default)
    outlook-mail-mcp serve -v     # Run MCP server with debug logging
    outlook-mail-mcp status       # Show configuration
"""

import logging
import sys
from typing import Annotated

import cyclopts

from .config import (
    get_access_token,
    get_default_folder,
    get_graph_endpoint,
    get_max_page_size,
    get_max_result_count,
    get_request_timeout,
    get_token_path,
)

app = cyclopts.App(
    name="outlook-mail-mcp",
    help="MCP server for Outlook mail via Microsoft Graph.",
)


def _configure_logging(verbose: bool) -> None:
    """Send log records to stderr; stdout carries the MCP protocol."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _run_serve(verbose: bool = False) -> None:
    """Internal function to run the MCP server."""
    from .server import mcp

    _configure_logging(verbose)

    if not get_access_token():
        print(
            "Warning: No access token found. Set OUTLOOK_MCP_ACCESS_TOKEN "
            f"or write a token file to {get_token_path()}",
            file=sys.stderr,
        )

    mcp.run()


@app.command
def serve(
    verbose: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--verbose", "-v"],
            help="Enable debug logging",
        ),
    ] = False,
) -> None:
    """
    Run the MCP server.

    This is the default command when no subcommand is specified.
    The server provides email search, listing and delta sync tools to
    MCP clients. Logs go to stderr.
    """
    _run_serve(verbose=verbose)


@app.command
def status() -> None:
    """
    Show the effective configuration.

    Displays:
    - Graph endpoint and default folder
    - Page size, result cap and request timeout
    - Whether an access token is available
    """
    token = get_access_token()

    print("Outlook Mail MCP Status")
    print("=" * 40)
    print(f"Endpoint:     {get_graph_endpoint()}")
    print(f"Folder:       {get_default_folder()}")
    print(f"Page size:    {get_max_page_size()}")
    print(f"Max results:  {get_max_result_count()}")
    print(f"Timeout:      {get_request_timeout():g}s")
    print(f"Token file:   {get_token_path()}")
    print()

    if token:
        print("Access token: available")
    else:
        print("Access token: missing or expired")
        print()
        print("⚠ Set OUTLOOK_MCP_ACCESS_TOKEN or refresh the token file.")
        sys.exit(1)


@app.default
def default_handler(
    verbose: Annotated[
        bool,
        cyclopts.Parameter(
            name=["--verbose", "-v"],
            help="Enable debug logging",
        ),
    ] = False,
) -> None:
    """Run the MCP server (default when no command specified)."""
    _run_serve(verbose=verbose)


def main() -> None:
    """Entry point for the CLI."""
    app()
