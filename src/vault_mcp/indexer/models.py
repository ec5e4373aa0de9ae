"""Data models for the vault index."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

# Tagged variant for parsed YAML values. Anything else is normalized to str.
FrontmatterValue = Union[
    str, int, float, bool, None, list["FrontmatterValue"], dict[str, "FrontmatterValue"]
]


@dataclass(frozen=True)
class NoteRecord:
    """One indexed text file."""

    path: str  # Relative from vault root, forward slashes
    mtime_ns: int
    size_bytes: int
    modified_at: float
    created_at: float
    frontmatter: dict[str, FrontmatterValue] = field(default_factory=dict)
    tags: frozenset[str] = frozenset()
    lines: tuple[str, ...] = ()
    outgoing_links: tuple[str, ...] = ()
    resolved_links: tuple[str, ...] = ()
    unresolved_links: tuple[str, ...] = ()
    ambiguous_links: dict[str, tuple[str, ...]] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    def is_stale(self, mtime_ns: int, size_bytes: int) -> bool:
        return self.mtime_ns != mtime_ns or self.size_bytes != size_bytes


@dataclass
class DirectoryNode:
    """A folder in the vault tree, synthesized per structure query."""

    name: str
    path: str  # "" for the vault root
    files: list[str] = field(default_factory=list)
    children: list["DirectoryNode"] = field(default_factory=list)
    total_file_count: int = 0

    @property
    def file_count(self) -> int:
        return len(self.files)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "file_count": self.file_count,
            "total_file_count": self.total_file_count,
            "files": list(self.files),
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class SearchMatch:
    """A single match produced by the search engine."""

    filename: str
    line_number: int  # 1-based
    line_content: str
    context_before: tuple[str, ...]
    context_after: tuple[str, ...]
    match_start: int  # 0-based character offset
    match_end: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "line_number": self.line_number,
            "line_content": self.line_content,
            "context_before": list(self.context_before),
            "context_after": list(self.context_after),
            "match_start": self.match_start,
            "match_end": self.match_end,
        }


@dataclass(frozen=True)
class TagCount:
    """A tag with the number of distinct notes carrying it."""

    tag: str
    count: int
    files: tuple[str, ...]


@dataclass(frozen=True)
class LinkedNotes:
    """Outgoing and incoming resolved links for one note."""

    path: str
    outgoing: tuple[str, ...]
    incoming: tuple[str, ...]
    unresolved: tuple[str, ...]


@dataclass
class RefreshStats:
    """Counts for a single refresh pass."""

    added: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.deleted or self.skipped)


@dataclass(frozen=True)
class VaultSnapshot:
    """Immutable view of the index. Published whole, never patched."""

    generation: int = 0
    files: tuple[str, ...] = ()
    records: Mapping[str, NoteRecord] = field(
        default_factory=lambda: MappingProxyType({})
    )
    tag_index: Mapping[str, frozenset[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    incoming: Mapping[str, tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    skipped: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
