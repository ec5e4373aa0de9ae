"""Configuration module for vaultmcp.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

VALID_TRANSPORTS = ("stdio", "sse")


def _parse_int(name: str, default: str, minimum: int) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"Invalid {name} value '{raw}': {e}") from e
    if value < minimum:
        raise ValueError(f"Invalid {name} value '{raw}': must be >= {minimum}")
    return value


def _parse_patterns(raw: str) -> tuple[str, ...]:
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass
class Config:
    """Application configuration."""

    vault_root: Path
    ignore_patterns: tuple[str, ...] = field(default_factory=tuple)
    sync_interval: int = 0
    read_workers: int = 4
    max_search_results: int = 500
    transport: str = "stdio"
    vault_port: int = 8080

    @classmethod
    def from_env(cls, vault_root_override: Path | None = None) -> "Config":
        """Load configuration from environment variables.

        Args:
            vault_root_override: If provided, overrides the VAULT_ROOT env var.
        """
        if vault_root_override is not None:
            vault_root = Path(vault_root_override).expanduser()
        else:
            default_root = str(Path.home() / "vault")
            vault_root = Path(os.getenv("VAULT_ROOT", default_root)).expanduser()

        ignore_patterns = _parse_patterns(os.getenv("VAULT_IGNORE", ""))

        sync_interval = _parse_int("VAULT_SYNC_INTERVAL", "0", minimum=0)
        read_workers = _parse_int("VAULT_READ_WORKERS", "4", minimum=1)
        max_search_results = _parse_int("VAULT_MAX_SEARCH_RESULTS", "500", minimum=1)

        transport = os.getenv("VAULT_TRANSPORT", "stdio").strip().lower()
        if transport not in VALID_TRANSPORTS:
            raise ValueError(
                f"Invalid VAULT_TRANSPORT value '{transport}': "
                f"expected one of {', '.join(VALID_TRANSPORTS)}"
            )

        port_str = os.getenv("VAULT_PORT", "8080")
        try:
            vault_port = int(port_str)
            if not 1 <= vault_port <= 65535:
                raise ValueError(f"Port must be between 1 and 65535, got {vault_port}")
        except ValueError as e:
            raise ValueError(f"Invalid VAULT_PORT value '{port_str}': {e}") from e

        return cls(
            vault_root=vault_root,
            ignore_patterns=ignore_patterns,
            sync_interval=sync_interval,
            read_workers=read_workers,
            max_search_results=max_search_results,
            transport=transport,
            vault_port=vault_port,
        )
