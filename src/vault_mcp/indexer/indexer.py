"""In-memory vault index with mtime/size cache validation."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from types import MappingProxyType

from vault_mcp.errors import (
    BadRequestError,
    IoFailureError,
    NotFoundError,
    RecoverableParseIssue,
)
from vault_mcp.indexer.links import build_link_graph
from vault_mcp.indexer.models import (
    DirectoryNode,
    LinkedNotes,
    NoteRecord,
    RefreshStats,
    SearchMatch,
    TagCount,
    VaultSnapshot,
)
from vault_mcp.indexer.parser import is_text_file, parse_note, read_note_file
from vault_mcp.indexer.search import compile_query, search_records
from vault_mcp.indexer.structure import build_structure
from vault_mcp.indexer.walker import FileInfo, normalize_vault_path, walk_vault

logger = logging.getLogger(__name__)


def _under(path: str, folder: str) -> bool:
    return not folder or path.startswith(folder + "/")


class VaultIndex:
    """
    In-memory index of a vault of markdown notes.

    The filesystem is always the source of truth. Every query first calls
    ensure_fresh(), which re-parses only files whose mtime or size changed,
    then answers from the immutable snapshot that call returned.

    Thread Safety:
        Refreshes are serialized by a lock and publish a new VaultSnapshot in
        a single assignment. Readers keep whatever snapshot they obtained, so
        they never observe a partially rebuilt tag or link map.
    """

    def __init__(
        self,
        vault_root: Path,
        ignore_patterns: tuple[str, ...] = (),
        read_workers: int = 4,
    ):
        """
        Initialize the index.

        Args:
            vault_root: Path to the vault directory
            ignore_patterns: fnmatch patterns excluded from the walk
            read_workers: Threads used to read changed files during a refresh
        """
        if read_workers < 1:
            raise ValueError(f"read_workers must be >= 1, got {read_workers}")
        self.vault_root = Path(vault_root)
        self.ignore_patterns = tuple(ignore_patterns)
        self.read_workers = read_workers
        self.last_refresh = RefreshStats()
        self._snapshot = VaultSnapshot()
        # (mtime_ns, size) of files that failed to load, so they are not
        # re-read until they change
        self._skipped_stat: dict[str, tuple[int, int]] = {}
        self._write_lock = threading.Lock()

    @property
    def snapshot(self) -> VaultSnapshot:
        """The currently published snapshot, without refreshing."""
        return self._snapshot

    def ensure_fresh(self) -> VaultSnapshot:
        """
        Bring the index in line with the filesystem and return the snapshot.

        Raises:
            IoFailureError: The vault root is inaccessible.
        """
        with self._write_lock:
            current = self._snapshot
            files = list(walk_vault(self.vault_root, ignore_patterns=self.ignore_patterns))

            stats = RefreshStats()
            records = dict(current.records)
            skipped = dict(current.skipped)
            seen: set[str] = set()
            changed: list[FileInfo] = []

            for info in files:
                if not is_text_file(info.relative_path):
                    continue
                seen.add(info.relative_path)
                state = (info.mtime_ns, info.size)
                if self._skipped_stat.get(info.relative_path) == state:
                    continue
                existing = records.get(info.relative_path)
                if existing is None or existing.is_stale(*state):
                    changed.append(info)

            for path in [p for p in records if p not in seen]:
                del records[path]
                stats.deleted += 1
            for path in [p for p in skipped if p not in seen]:
                del skipped[path]
                self._skipped_stat.pop(path, None)

            file_paths = tuple(sorted(info.relative_path for info in files))
            if not changed and not stats.deleted and file_paths == current.files:
                self.last_refresh = stats
                logger.debug("Vault unchanged, keeping snapshot %d", current.generation)
                return current

            # Reads are independent per file; derived maps wait for all of them
            with ThreadPoolExecutor(max_workers=self.read_workers) as pool:
                results = list(pool.map(self._load_record, changed))

            for info, result in zip(changed, results):
                path = info.relative_path
                existed = path in records
                if isinstance(result, RecoverableParseIssue):
                    records.pop(path, None)
                    skipped[path] = result.message
                    self._skipped_stat[path] = (info.mtime_ns, info.size)
                    stats.skipped += 1
                    if existed:
                        stats.deleted += 1
                    continue
                skipped.pop(path, None)
                self._skipped_stat.pop(path, None)
                records[path] = result
                if existed:
                    stats.updated += 1
                else:
                    stats.added += 1

            self._snapshot = self._build_snapshot(
                current.generation + 1, file_paths, records, skipped
            )
            self.last_refresh = stats

            if stats.skipped:
                logger.warning(
                    "%d file(s) skipped during refresh (%d unreadable in vault)",
                    stats.skipped,
                    len(skipped),
                )
            logger.info(
                "Refresh complete: %d added, %d updated, %d deleted",
                stats.added,
                stats.updated,
                stats.deleted,
            )
            return self._snapshot

    def _load_record(self, info: FileInfo) -> NoteRecord | RecoverableParseIssue:
        """Read and parse one file. Failures are returned, not raised."""
        try:
            content = read_note_file(info.path, info.relative_path)
        except RecoverableParseIssue as e:
            logger.warning("%s", e.message)
            return e

        try:
            parsed = parse_note(content, info.relative_path)
        except Exception as e:
            logger.exception("Unexpected error parsing %s", info.relative_path)
            return RecoverableParseIssue(f"Cannot parse {info.relative_path}: {e}")
        return NoteRecord(
            path=info.relative_path,
            mtime_ns=info.mtime_ns,
            size_bytes=info.size,
            modified_at=info.modified_at,
            created_at=info.created_at,
            frontmatter=parsed.frontmatter,
            tags=parsed.tags,
            lines=parsed.lines,
            outgoing_links=parsed.outgoing_links,
            warnings=parsed.warnings,
        )

    @staticmethod
    def _build_snapshot(
        generation: int,
        files: tuple[str, ...],
        records: dict[str, NoteRecord],
        skipped: dict[str, str],
    ) -> VaultSnapshot:
        """Recompute every derived map from scratch over the record set."""
        graph = build_link_graph(records)
        linked = {
            path: replace(
                record,
                resolved_links=graph.resolved.get(path, ()),
                unresolved_links=graph.unresolved.get(path, ()),
                ambiguous_links=graph.ambiguous.get(path, {}),
            )
            for path, record in sorted(records.items())
        }

        tag_sets: dict[str, set[str]] = {}
        for path, record in linked.items():
            for tag in record.tags:
                tag_sets.setdefault(tag, set()).add(path)

        return VaultSnapshot(
            generation=generation,
            files=files,
            records=MappingProxyType(linked),
            tag_index=MappingProxyType(
                {tag: frozenset(paths) for tag, paths in tag_sets.items()}
            ),
            incoming=MappingProxyType(dict(graph.incoming)),
            skipped=MappingProxyType(dict(skipped)),
        )

    # Query methods

    def list_files(self, subfolder: str | None = None) -> list[str]:
        """List every regular file in the vault, optionally under a folder."""
        snapshot = self.ensure_fresh()
        folder = normalize_vault_path(subfolder)
        files = [p for p in snapshot.files if _under(p, folder)]
        if folder and not files:
            raise NotFoundError(f"Folder not found: {folder}")
        return files

    def get_structure(self, subfolder: str | None = None) -> DirectoryNode:
        """Return the folder tree with per-node file counts."""
        snapshot = self.ensure_fresh()
        return build_structure(snapshot.files, subfolder)

    def get_metadata(self, path: str) -> NoteRecord:
        """
        Return the record for an exact note path.

        Raises:
            NotFoundError: No such note.
            RecoverableParseIssue: The file exists but could not be indexed.
        """
        return self._lookup(self.ensure_fresh(), path)

    @staticmethod
    def _lookup(snapshot: VaultSnapshot, path: str) -> NoteRecord:
        key = normalize_vault_path(path)
        if not key:
            raise BadRequestError("A file path is required")
        record = snapshot.records.get(key)
        if record is not None:
            return record
        if key in snapshot.skipped:
            raise RecoverableParseIssue(snapshot.skipped[key])
        raise NotFoundError(f"File not found: {key}")

    def get_tags_summary(self, subfolder: str | None = None) -> list[TagCount]:
        """Count distinct notes per tag, most used first, ties by tag name."""
        snapshot = self.ensure_fresh()
        folder = normalize_vault_path(subfolder)
        if folder and not any(_under(p, folder) for p in snapshot.files):
            raise NotFoundError(f"Folder not found: {folder}")

        summary = []
        for tag, paths in snapshot.tag_index.items():
            scoped = sorted(p for p in paths if _under(p, folder))
            if scoped:
                summary.append(TagCount(tag=tag, count=len(scoped), files=tuple(scoped)))
        summary.sort(key=lambda t: (-t.count, t.tag))
        return summary

    def get_notes_by_tag(
        self, tags: list[str], subfolder: str | None = None
    ) -> list[NoteRecord]:
        """Return notes carrying ANY of the given tags, sorted by path."""
        wanted = {t.strip().lstrip("#").lower() for t in tags} - {""}
        if not wanted:
            raise BadRequestError("At least one tag must be provided")

        snapshot = self.ensure_fresh()
        folder = normalize_vault_path(subfolder)
        paths: set[str] = set()
        for tag in wanted:
            paths.update(snapshot.tag_index.get(tag, ()))
        return [snapshot.records[p] for p in sorted(paths) if _under(p, folder)]

    def get_linked_notes(self, path: str) -> LinkedNotes:
        """
        Return resolved outgoing links and incoming links for a note.

        Raises:
            NotFoundError: No such note.
        """
        snapshot = self.ensure_fresh()
        record = self._lookup(snapshot, path)
        return LinkedNotes(
            path=record.path,
            outgoing=record.resolved_links,
            incoming=snapshot.incoming.get(record.path, ()),
            unresolved=record.unresolved_links,
        )

    def search(
        self,
        query: str,
        context_lines: int = 2,
        regex: bool = False,
        case_sensitive: bool = False,
        scope: str | None = None,
        limit: int | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[SearchMatch]:
        """Search every indexed text file for a literal or regex query."""
        pattern = compile_query(query, regex=regex, case_sensitive=case_sensitive)
        snapshot = self.ensure_fresh()
        return search_records(
            snapshot.records,
            pattern,
            context_lines=context_lines,
            scope=scope,
            limit=limit,
            cancel_event=cancel_event,
        )

    def read_text_file(self, path: str) -> str:
        """
        Read a file straight from disk, bypassing the index.

        Raises:
            BadRequestError: Path escapes the vault or is a directory.
            NotFoundError: No such file.
            RecoverableParseIssue: File is not valid UTF-8 text.
        """
        key = normalize_vault_path(path)
        if not key:
            raise BadRequestError("A file path is required")
        if not self.vault_root.is_dir():
            raise IoFailureError(
                f"Vault root is not an accessible directory: {self.vault_root}"
            )

        full_path = self.vault_root / key
        try:
            full_path.resolve().relative_to(self.vault_root.resolve())
        except ValueError as e:
            raise BadRequestError(f"Path '{key}' is outside the vault") from e

        if not full_path.exists():
            raise NotFoundError(f"File not found: {key}")
        if not full_path.is_file():
            raise BadRequestError(f"Path is not a file: {key}")
        return read_note_file(full_path, key)
