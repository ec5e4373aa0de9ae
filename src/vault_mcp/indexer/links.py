"""Wiki-link resolution and the bidirectional link graph.

A raw link target is resolved against the indexed note paths with a fixed
rule cascade:

1. exact path, extension included (``[[lore/gods.md]]``)
2. exact path with a markdown extension appended (``[[lore/gods]]``)
3. basename, extension- and case-insensitive, for targets without ``/``
   (``[[Gods]]``)
4. suffix on whole path segments, extension- and case-insensitive
   (``[[locations/tavern]]`` -> ``world/locations/tavern.md``)

The first rule with any candidate decides. A single candidate resolves the
link; several candidates leave it unresolved and reported as ambiguous.
Dangling and ambiguous links never raise.
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import PurePosixPath

from vault_mcp.indexer.models import NoteRecord
from vault_mcp.indexer.parser import MARKDOWN_EXTENSIONS, TEXT_EXTENSIONS


@dataclass(frozen=True)
class LinkResolution:
    """Outcome of resolving one raw link target."""

    target: str
    path: str | None
    candidates: tuple[str, ...] = ()

    @property
    def is_ambiguous(self) -> bool:
        return self.path is None and len(self.candidates) > 1


def _strip_extension(path: str) -> str:
    suffix = PurePosixPath(path).suffix
    if suffix.lower() in TEXT_EXTENSIONS:
        return path[: -len(suffix)]
    return path


class LinkResolver:
    """Resolves wiki-link targets against a fixed set of note paths."""

    def __init__(self, paths: Iterable[str]):
        self._paths = frozenset(paths)
        self._by_stem: dict[str, list[str]] = defaultdict(list)
        for path in sorted(self._paths):
            stem = _strip_extension(PurePosixPath(path).name).lower()
            self._by_stem[stem].append(path)

    def resolve(self, target: str) -> LinkResolution:
        normalized = target.strip().replace("\\", "/").lstrip("/")
        if normalized.startswith("./"):
            normalized = normalized[2:]

        if normalized in self._paths:
            return LinkResolution(target, normalized, (normalized,))

        for ext in MARKDOWN_EXTENSIONS:
            candidate = f"{normalized}{ext}"
            if candidate in self._paths:
                return LinkResolution(target, candidate, (candidate,))

        bare = _strip_extension(normalized).lower()
        if "/" not in bare:
            matches = self._by_stem.get(bare, [])
            decided = self._decide(target, matches)
            if decided is not None:
                return decided

        stem = bare.rsplit("/", 1)[-1]
        suffix = f"/{bare}"
        matches = [
            p
            for p in self._by_stem.get(stem, [])
            if f"/{_strip_extension(p).lower()}".endswith(suffix)
        ]
        decided = self._decide(target, matches)
        if decided is not None:
            return decided

        return LinkResolution(target, None)

    @staticmethod
    def _decide(target: str, matches: list[str]) -> LinkResolution | None:
        if not matches:
            return None
        if len(matches) == 1:
            return LinkResolution(target, matches[0], (matches[0],))
        return LinkResolution(target, None, tuple(sorted(matches)))


@dataclass(frozen=True)
class LinkGraph:
    """Resolved links per note plus the transposed incoming map."""

    resolved: dict[str, tuple[str, ...]]
    unresolved: dict[str, tuple[str, ...]]
    ambiguous: dict[str, dict[str, tuple[str, ...]]]
    incoming: dict[str, tuple[str, ...]]


def build_link_graph(records: Mapping[str, NoteRecord]) -> LinkGraph:
    """Resolve every note's outgoing links and compute incoming links."""
    resolver = LinkResolver(records.keys())
    resolved: dict[str, tuple[str, ...]] = {}
    unresolved: dict[str, tuple[str, ...]] = {}
    ambiguous: dict[str, dict[str, tuple[str, ...]]] = {}
    incoming_sets: dict[str, set[str]] = defaultdict(set)

    for path in sorted(records):
        targets: list[str] = []
        dangling: list[str] = []
        note_ambiguous: dict[str, tuple[str, ...]] = {}
        for raw in records[path].outgoing_links:
            resolution = resolver.resolve(raw)
            if resolution.path is None:
                dangling.append(raw)
                if resolution.is_ambiguous:
                    note_ambiguous[raw] = resolution.candidates
            elif resolution.path not in targets:
                targets.append(resolution.path)
                incoming_sets[resolution.path].add(path)
        resolved[path] = tuple(targets)
        unresolved[path] = tuple(dangling)
        if note_ambiguous:
            ambiguous[path] = note_ambiguous

    incoming = {target: tuple(sorted(sources)) for target, sources in incoming_sets.items()}
    return LinkGraph(
        resolved=resolved, unresolved=unresolved, ambiguous=ambiguous, incoming=incoming
    )
