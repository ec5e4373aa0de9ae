"""Main entry point for vaultmcp MCP server."""

import argparse
import logging
import sys
from pathlib import Path

from fastmcp import FastMCP

from vault_mcp.config import VALID_TRANSPORTS, Config
from vault_mcp.indexer import VaultIndex
from vault_mcp.sync import SyncManager
from vault_mcp.tools import register_tools

logger = logging.getLogger(__name__)


def create_index(config: Config) -> VaultIndex:
    """Create the vault index and run the initial refresh.

    Raises:
        IoFailureError: The vault root is inaccessible.
    """
    index = VaultIndex(
        config.vault_root,
        ignore_patterns=config.ignore_patterns,
        read_workers=config.read_workers,
    )
    logger.info("Indexing vault at %s", config.vault_root)
    snapshot = index.ensure_fresh()
    logger.info(
        "Initial index complete: %d notes, %d files, %d skipped",
        len(snapshot.records),
        len(snapshot.files),
        len(snapshot.skipped),
    )
    return index


def create_server(config: Config, index: VaultIndex | None = None) -> FastMCP:
    """Create and configure the MCP server with all components.

    Args:
        config: Configuration instance with all settings.
        index: Optional pre-built index; created from config if omitted.
    """
    mcp = FastMCP(
        name="vaultMCP",
        instructions=(
            "vaultMCP gives read access to a vault of markdown notes. Start with "
            "get_vault_structure or get_tags_summary to learn how the notes are "
            "organized, use search_with_context to find content, get_linked_notes "
            "to follow [[wiki-links]], and read_text_file to read a whole note. "
            "All paths are relative to the vault root."
        ),
    )

    if index is None:
        index = create_index(config)

    logger.info("Registering read tools...")
    names = register_tools(mcp, index, config)
    logger.info("Registered %d tools: %s", len(names), ", ".join(names))

    logger.info("Server configured successfully")
    return mcp


def main() -> None:
    """Main function - starts the MCP server."""
    # Configure logging here to avoid side effects on import
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    parser = argparse.ArgumentParser(description="vaultMCP - MCP server for markdown vaults")
    parser.add_argument(
        "--vault",
        type=Path,
        default=None,
        help="Path to the vault (overrides VAULT_ROOT)",
    )
    parser.add_argument(
        "--transport",
        choices=VALID_TRANSPORTS,
        default=None,
        help="MCP transport (overrides VAULT_TRANSPORT)",
    )
    args = parser.parse_args()

    try:
        config = Config.from_env(vault_root_override=args.vault)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        sys.exit(2)
    if args.transport:
        config.transport = args.transport

    logger.info("=" * 50)
    logger.info("vaultMCP starting...")
    logger.info("  VAULT_ROOT:    %s", config.vault_root)
    logger.info("  IGNORE:        %s", ", ".join(config.ignore_patterns) or "(none)")
    logger.info("  TRANSPORT:     %s", config.transport)
    logger.info("  SYNC_INTERVAL: %s", config.sync_interval or "disabled")
    logger.info("=" * 50)

    sync_manager: SyncManager | None = None
    try:
        index = create_index(config)
        mcp = create_server(config, index)

        if config.sync_interval > 0:
            sync_manager = SyncManager(index, config.sync_interval)
            sync_manager.start()

        if config.transport == "sse":
            logger.info("Starting MCP server on port %s...", config.vault_port)
            mcp.run(transport="sse", host="0.0.0.0", port=config.vault_port)
        else:
            mcp.run(transport="stdio")
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        sys.exit(0)
    except Exception:
        logger.exception("Server error")
        sys.exit(1)
    finally:
        if sync_manager is not None:
            sync_manager.stop()


if __name__ == "__main__":
    main()
