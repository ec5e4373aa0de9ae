"""Tests for the VaultIndex class."""

import os
import shutil
import threading
from pathlib import Path

import pytest

from vault_mcp.errors import (
    BadRequestError,
    IoFailureError,
    NotFoundError,
    RecoverableParseIssue,
)
from vault_mcp.indexer import VaultIndex
from vault_mcp.indexer import indexer as indexer_module


@pytest.fixture
def index(fixtures_root: Path) -> VaultIndex:
    return VaultIndex(fixtures_root)


@pytest.fixture
def vault_copy(fixtures_root: Path, tmp_path: Path) -> Path:
    """Writable copy of the fixture vault."""
    root = tmp_path / "vault"
    shutil.copytree(fixtures_root, root)
    return root


def bump_mtime(path: Path) -> None:
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))


class TestVaultIndexInit:
    def test_rejects_zero_workers(self, fixtures_root: Path):
        with pytest.raises(ValueError, match="read_workers"):
            VaultIndex(fixtures_root, read_workers=0)

    def test_starts_empty(self, index: VaultIndex):
        assert index.snapshot.generation == 0
        assert index.snapshot.records == {}


class TestVaultIndexRefresh:
    def test_initial_refresh_indexes_text_files(self, index: VaultIndex):
        snapshot = index.ensure_fresh()
        assert snapshot.generation == 1
        assert sorted(snapshot.records) == [
            "campaign.md",
            "characters/mira.md",
            "characters/villain.md",
            "locations/tavern.md",
            "sessions/notes.txt",
            "sessions/session-01.md",
        ]
        assert index.last_refresh.added == 6

    def test_unchanged_vault_keeps_snapshot(self, index: VaultIndex):
        first = index.ensure_fresh()
        second = index.ensure_fresh()
        assert second is first
        assert not index.last_refresh.changed

    def test_detects_added_file(self, vault_copy: Path):
        index = VaultIndex(vault_copy)
        index.ensure_fresh()

        (vault_copy / "characters" / "guard.md").write_text("# Guard\n#npc\n")
        snapshot = index.ensure_fresh()

        assert "characters/guard.md" in snapshot.records
        assert index.last_refresh.added == 1
        assert snapshot.generation == 2
        assert index.get_tags_summary()[0].count == 3

    def test_detects_updated_file(self, vault_copy: Path):
        index = VaultIndex(vault_copy)
        index.ensure_fresh()

        tavern = vault_copy / "locations" / "tavern.md"
        tavern.write_text("# The Rusty Flagon\n\nBurned down. #ruin\n")
        bump_mtime(tavern)
        snapshot = index.ensure_fresh()

        assert index.last_refresh.updated == 1
        assert snapshot.records["locations/tavern.md"].tags == frozenset({"ruin"})
        assert "location" not in snapshot.tag_index
        # Mira lost the incoming link from the tavern
        assert "locations/tavern.md" not in snapshot.incoming["characters/mira.md"]

    def test_detects_deleted_file(self, vault_copy: Path):
        index = VaultIndex(vault_copy)
        index.ensure_fresh()

        (vault_copy / "characters" / "villain.md").unlink()
        snapshot = index.ensure_fresh()

        assert index.last_refresh.deleted == 1
        assert "characters/villain.md" not in snapshot.records
        assert "villain" not in snapshot.tag_index
        assert "characters/villain.md" not in snapshot.files
        campaign = snapshot.records["campaign.md"]
        assert "villain" in campaign.unresolved_links

    def test_touch_reparses_to_identical_result(self, vault_copy: Path):
        index = VaultIndex(vault_copy)
        before = index.ensure_fresh().records["characters/mira.md"]

        bump_mtime(vault_copy / "characters" / "mira.md")
        after = index.ensure_fresh().records["characters/mira.md"]

        assert index.last_refresh.updated == 1
        assert after.frontmatter == before.frontmatter
        assert after.tags == before.tags
        assert after.lines == before.lines
        assert after.resolved_links == before.resolved_links
        assert after.mtime_ns != before.mtime_ns

    def test_undecodable_file_is_skipped(self, make_vault):
        root = make_vault({"good.md": "# ok\n", "bad.md": b"\xff\xfe\xfa broken"})
        index = VaultIndex(root)
        snapshot = index.ensure_fresh()

        assert sorted(snapshot.records) == ["good.md"]
        assert "bad.md" in snapshot.skipped
        assert index.last_refresh.skipped == 1
        with pytest.raises(RecoverableParseIssue, match="UTF-8"):
            index.get_metadata("bad.md")

    def test_invalid_frontmatter_date_does_not_block_queries(self, make_vault):
        root = make_vault({
            "good.md": "the dragon sleeps\n",
            "bad.md": "---\ndate: 2023-13-45\n---\nbody\n",
        })
        index = VaultIndex(root)

        matches = index.search("dragon")

        assert [m.filename for m in matches] == ["good.md"]
        bad = index.get_metadata("bad.md")
        assert bad.frontmatter == {}
        assert len(bad.warnings) == 1
        assert bad.lines == ("---", "date: 2023-13-45", "---", "body")

    def test_unexpected_parse_error_skips_file(self, make_vault, monkeypatch):
        root = make_vault({"good.md": "# ok\n", "odd.md": "# odd\n"})
        real_parse_note = indexer_module.parse_note

        def parse_note(content, file_path):
            if file_path == "odd.md":
                raise RuntimeError("parser exploded")
            return real_parse_note(content, file_path)

        monkeypatch.setattr(indexer_module, "parse_note", parse_note)
        index = VaultIndex(root)
        snapshot = index.ensure_fresh()

        assert list(snapshot.records) == ["good.md"]
        assert "parser exploded" in snapshot.skipped["odd.md"]
        assert index.last_refresh.skipped == 1
        with pytest.raises(RecoverableParseIssue, match="Cannot parse odd.md"):
            index.get_metadata("odd.md")

    def test_skipped_file_not_reread_until_changed(self, make_vault):
        root = make_vault({"bad.md": b"\xff\xfe broken"})
        index = VaultIndex(root)
        first = index.ensure_fresh()
        assert index.ensure_fresh() is first

        (root / "bad.md").write_text("# fixed\n")
        bump_mtime(root / "bad.md")
        snapshot = index.ensure_fresh()
        assert "bad.md" in snapshot.records
        assert "bad.md" not in snapshot.skipped

    def test_non_text_files_listed_but_not_indexed(self, make_vault):
        root = make_vault({"a.md": "# A\n", "img/map.png": b"\x89PNG\x00"})
        index = VaultIndex(root)
        snapshot = index.ensure_fresh()
        assert snapshot.files == ("a.md", "img/map.png")
        assert list(snapshot.records) == ["a.md"]

    def test_ignore_patterns(self, fixtures_root: Path):
        index = VaultIndex(fixtures_root, ignore_patterns=("sessions",))
        snapshot = index.ensure_fresh()
        assert not any(p.startswith("sessions/") for p in snapshot.files)

    def test_missing_root_is_io_failure(self, vault_copy: Path):
        index = VaultIndex(vault_copy)
        index.ensure_fresh()
        shutil.rmtree(vault_copy)
        with pytest.raises(IoFailureError):
            index.ensure_fresh()

    def test_readers_keep_their_snapshot(self, vault_copy: Path):
        index = VaultIndex(vault_copy)
        old = index.ensure_fresh()
        old_tags = dict(old.tag_index)

        (vault_copy / "new.md").write_text("#fresh\n")
        new = index.ensure_fresh()

        assert new is not old
        assert dict(old.tag_index) == old_tags
        assert "fresh" in new.tag_index
        assert "fresh" not in old.tag_index

    def test_concurrent_queries_see_consistent_snapshots(self, vault_copy: Path):
        index = VaultIndex(vault_copy, read_workers=2)
        index.ensure_fresh()
        errors: list[Exception] = []

        def query():
            try:
                for _ in range(20):
                    snapshot = index.ensure_fresh()
                    for tag, paths in snapshot.tag_index.items():
                        for path in paths:
                            assert tag in snapshot.records[path].tags
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=query) for _ in range(4)]
        for thread in threads:
            thread.start()
        for i in range(5):
            (vault_copy / f"extra-{i}.md").write_text(f"#extra{i}\n")
        for thread in threads:
            thread.join()

        assert errors == []


class TestVaultIndexQueries:
    def test_list_files(self, index: VaultIndex):
        assert index.list_files("characters") == [
            "characters/mira.md",
            "characters/villain.md",
        ]
        assert len(index.list_files()) == 6

    def test_list_files_unknown_folder(self, index: VaultIndex):
        with pytest.raises(NotFoundError, match="Folder not found"):
            index.list_files("nowhere")

    def test_structure(self, index: VaultIndex):
        root = index.get_structure()
        assert root.total_file_count == 6
        assert root.files == ["campaign.md"]
        assert [c.name for c in root.children] == ["characters", "locations", "sessions"]

    def test_metadata(self, index: VaultIndex):
        record = index.get_metadata("characters/mira.md")
        assert record.frontmatter == {
            "title": "Mira",
            "tags": ["npc", "tavern"],
            "race": "elf",
            "level": 4,
        }
        assert record.tags == frozenset({"npc", "tavern", "quest-giver"})
        assert record.resolved_links == ("locations/tavern.md",)
        assert record.size_bytes > 0

    def test_metadata_normalizes_date(self, index: VaultIndex):
        record = index.get_metadata("sessions/session-01.md")
        assert record.frontmatter["date"] == "2024-03-01"

    def test_metadata_missing(self, index: VaultIndex):
        with pytest.raises(NotFoundError, match="File not found"):
            index.get_metadata("nope.md")

    def test_metadata_requires_path(self, index: VaultIndex):
        with pytest.raises(BadRequestError):
            index.get_metadata("")

    def test_tags_summary(self, index: VaultIndex):
        summary = index.get_tags_summary()
        assert [(t.tag, t.count) for t in summary] == [
            ("npc", 2),
            ("campaign", 1),
            ("dragon", 1),
            ("location", 1),
            ("planning", 1),
            ("quest-giver", 1),
            ("session", 1),
            ("tavern", 1),
            ("villain", 1),
        ]
        assert summary[0].files == ("characters/mira.md", "characters/villain.md")

    def test_tags_summary_counts_distinct_notes(self, index: VaultIndex):
        snapshot = index.ensure_fresh()
        for entry in index.get_tags_summary():
            holders = {p for p, r in snapshot.records.items() if entry.tag in r.tags}
            assert entry.count == len(holders)

    def test_tags_summary_subfolder(self, index: VaultIndex):
        summary = index.get_tags_summary("characters")
        assert summary[0].tag == "npc"
        assert {t.tag for t in summary} == {"npc", "tavern", "quest-giver", "villain", "dragon"}

    def test_npc_scenario(self, make_vault):
        root = make_vault({"npc.md": "---\ntags: [npc, tavern]\n---\n# Innkeeper\n"})
        index = VaultIndex(root)
        summary = [(t.tag, t.count) for t in index.get_tags_summary()]
        assert summary == [("npc", 1), ("tavern", 1)]

    def test_tag_counted_once_per_note(self, make_vault):
        root = make_vault({
            "npc.md": "---\ntags: [npc]\n---\nA wandering #npc\n",
            "other.md": "#npc and #shop\n",
        })
        index = VaultIndex(root)
        summary = {t.tag: t.count for t in index.get_tags_summary()}
        assert summary == {"npc": 2, "shop": 1}

    def test_notes_by_tag_any_semantics(self, index: VaultIndex):
        notes = index.get_notes_by_tag(["villain", "#Location"])
        assert [n.path for n in notes] == ["characters/villain.md", "locations/tavern.md"]

    def test_notes_by_tag_requires_tag(self, index: VaultIndex):
        with pytest.raises(BadRequestError, match="At least one tag"):
            index.get_notes_by_tag(["", "#"])

    def test_notes_by_unknown_tag(self, index: VaultIndex):
        assert index.get_notes_by_tag(["nonexistent"]) == []

    def test_linked_notes(self, index: VaultIndex):
        linked = index.get_linked_notes("characters/mira.md")
        assert linked.outgoing == ("locations/tavern.md",)
        assert linked.incoming == (
            "campaign.md",
            "locations/tavern.md",
            "sessions/session-01.md",
        )

        villain = index.get_linked_notes("characters/villain.md")
        assert villain.outgoing == ()
        assert villain.unresolved == ("lair",)
        assert villain.incoming == ("campaign.md",)

    def test_incoming_is_transpose_of_outgoing(self, index: VaultIndex):
        snapshot = index.ensure_fresh()
        for path, record in snapshot.records.items():
            for target in record.resolved_links:
                assert path in snapshot.incoming[target]
        for target, sources in snapshot.incoming.items():
            for source in sources:
                assert target in snapshot.records[source].resolved_links

    def test_a_b_scenario(self, make_vault):
        root = make_vault({"a.md": "see [[b]]\n", "b.md": "nothing\n"})
        index = VaultIndex(root)
        a = index.get_linked_notes("a.md")
        b = index.get_linked_notes("b.md")
        assert (a.outgoing, a.incoming) == (("b.md",), ())
        assert (b.outgoing, b.incoming) == ((), ("a.md",))

    def test_search_literal(self, index: VaultIndex):
        matches = index.search("dragon")
        assert len(matches) == 6
        mira = next(m for m in matches if m.filename == "characters/mira.md")
        assert mira.line_number == 10
        assert (mira.match_start, mira.match_end) == (20, 26)
        assert mira.context_after == ()

    def test_search_regex(self, index: VaultIndex):
        matches = index.search("drag.n", regex=True)
        assert len(matches) == 7
        assert any(m.filename == "sessions/notes.txt" for m in matches)
        assert not any("dragoon" in m.line_content for m in matches)

    def test_search_invalid_regex(self, index: VaultIndex):
        with pytest.raises(BadRequestError):
            index.search("(", regex=True)

    def test_search_scope(self, index: VaultIndex):
        matches = index.search("dragon", scope="characters")
        assert {m.filename for m in matches} == {
            "characters/mira.md",
            "characters/villain.md",
        }

    def test_search_reflects_latest_content(self, vault_copy: Path):
        index = VaultIndex(vault_copy)
        assert index.search("wyvern") == []
        (vault_copy / "beast.md").write_text("A wyvern circles.\n")
        assert [m.filename for m in index.search("wyvern")] == ["beast.md"]


class TestReadTextFile:
    def test_reads_raw_content(self, index: VaultIndex, fixtures_root: Path):
        content = index.read_text_file("locations/tavern.md")
        assert content == (fixtures_root / "locations" / "tavern.md").read_text(encoding="utf-8")

    def test_missing(self, index: VaultIndex):
        with pytest.raises(NotFoundError):
            index.read_text_file("missing.md")

    def test_directory(self, index: VaultIndex):
        with pytest.raises(BadRequestError, match="not a file"):
            index.read_text_file("characters")

    def test_escape_attempt(self, index: VaultIndex):
        with pytest.raises(BadRequestError):
            index.read_text_file("../secret.md")

    def test_symlink_outside_vault(self, vault_copy: Path, tmp_path: Path):
        outside = tmp_path / "outside.md"
        outside.write_text("secret")
        (vault_copy / "link.md").symlink_to(outside)
        with pytest.raises(BadRequestError, match="outside the vault"):
            VaultIndex(vault_copy).read_text_file("link.md")

    def test_missing_root(self, tmp_path: Path):
        with pytest.raises(IoFailureError):
            VaultIndex(tmp_path / "gone").read_text_file("a.md")

    def test_undecodable(self, make_vault):
        root = make_vault({"bad.md": b"\xff\xfe broken"})
        with pytest.raises(RecoverableParseIssue):
            VaultIndex(root).read_text_file("bad.md")
