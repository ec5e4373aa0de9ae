"""
vaultmcp - MCP server for navigating a vault of markdown notes.

Lets an AI agent explore a large, loosely structured note collection
(folder layout, frontmatter, tags, wiki-link graph, full-text search)
without loading the whole corpus into its context window.

Stack:
- Python + FastMCP
- In-memory index validated against file mtime/size
- Markdown + YAML frontmatter (source of truth)
"""

__version__ = "0.1.0"
