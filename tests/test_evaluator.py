"""
Tests for the evaluator, run against the seeded SQLite store.

See conftest.seed_store() for the fixture data.
"""

import pytest

from tagsearch.evaluator import classify, evaluate, glob_to_regex, sort_items
from tagsearch.filter_builder import build_boolean_filter
from tagsearch.parser import parse_query
from tagsearch.types import Item


def run(seeded, text, **kwargs):
    return seeded.names(evaluate(parse_query(text), seeded.store, **kwargs))


class TestTagSemantics:
    """AND = superset, OR = intersection, NOT = exclusion."""

    def test_and_requires_every_tag(self, seeded):
        """Only items carrying both tags match."""
        predicate = build_boolean_filter(
            [seeded.tags["work"], seeded.tags["2024"]], "AND", tag_values=seeded.tag_values,
        )
        assert seeded.names(evaluate(predicate, seeded.store)) == ["report.pdf"]

    def test_or_requires_any_tag(self, seeded):
        """Items carrying either tag match."""
        predicate = build_boolean_filter(
            [seeded.tags["work"], seeded.tags["2024"]], "OR", tag_values=seeded.tag_values,
        )
        assert seeded.names(evaluate(predicate, seeded.store)) == [
            "beach.JPG", "notes.txt", "projects", "report.pdf",
        ]

    def test_builder_and_query_agree(self, seeded):
        """Checkbox and query surfaces return identical results."""
        predicate = build_boolean_filter(
            [seeded.tags["personal"], seeded.tags["draft"]], "OR", "c",
            tag_values=seeded.tag_values,
        )
        from_builder = evaluate(predicate, seeded.store)
        from_query = evaluate(
            parse_query('(tag = "personal" OR tag = "draft") AND name ~ "*c*"'), seeded.store,
        )
        assert from_builder == from_query
        assert seeded.names(from_builder) == ["beach.JPG", "clip.mp4"]

    def test_not_excludes_carriers(self, seeded):
        """NOT tag = "work" drops every item tagged work."""
        assert run(seeded, 'NOT tag = "work"') == [
            "beach.JPG", "clip.mp4", "photo.jpgx", "song.mp3",
        ]

    def test_not_equal_operator(self, seeded):
        """tag != is the same as NOT tag =."""
        assert run(seeded, 'tag != "work"') == run(seeded, 'NOT tag = "work"')

    def test_in_equals_or(self, seeded):
        """IN returns the same items as the OR of equalities."""
        expected = ["clip.mp4", "notes.txt", "report.pdf"]
        assert run(seeded, 'tag IN ("draft", "final")') == expected
        assert run(seeded, 'tag = "draft" OR tag = "final"') == expected

    def test_parentheses_change_outcome(self, seeded):
        """Grouping changes which items match."""
        ungrouped = run(seeded, 'tag = "work" AND tag = "2024" OR tag = "personal"')
        grouped = run(seeded, 'tag = "work" AND (tag = "2024" OR tag = "personal")')
        assert ungrouped == ["beach.JPG", "clip.mp4", "photo.jpgx", "report.pdf"]
        assert grouped == ["report.pdf"]

    def test_tag_match_is_case_insensitive_across_groups(self, seeded):
        """"urgent" matches both Project/urgent and Status/Urgent."""
        assert run(seeded, 'tag = "URGENT"') == ["projects", "song.mp3"]

    def test_unknown_tag_matches_nothing(self, seeded):
        assert run(seeded, 'tag = "nope"') == []


class TestAttributeLeaves:
    """name, size, modified and type leaves."""

    def test_size_boundary(self, seeded):
        """10 MB exactly matches >= 10MB but not > 10MB."""
        assert run(seeded, "size >= 10MB") == ["beach.JPG", "clip.mp4", "photo.jpgx"]
        assert run(seeded, "size > 10MB") == ["clip.mp4", "photo.jpgx"]

    def test_size_upper_bound(self, seeded):
        assert run(seeded, "size < 1KB") == ["notes.txt"]
        assert run(seeded, "size <= 1000") == ["notes.txt"]

    def test_name_glob_anchored(self, seeded):
        """*.jpg matches beach.JPG but not photo.jpgx."""
        assert run(seeded, 'name ~ "*.jpg"') == ["beach.JPG"]

    def test_name_glob_question_mark(self, seeded):
        """? matches exactly one character."""
        assert run(seeded, 'name ~ "????.mp?"') == ["clip.mp4", "song.mp3"]
        assert run(seeded, 'name ~ "???.mp?"') == []

    def test_name_matches_final_segment_only(self, seeded):
        """Directory names in the path don't count."""
        assert run(seeded, 'name ~ "docs*"') == []
        assert run(seeded, 'name ~ "proj*"') == ["projects"]

    def test_modified_after(self, seeded):
        """Items with no timestamp never match a date comparison."""
        assert run(seeded, 'modified >= "2024-01-01"') == [
            "beach.JPG", "clip.mp4", "projects", "report.pdf",
        ]

    def test_modified_missing_fails_negation_too(self, seeded):
        """photo.jpgx has no mtime, so it fails both < and >=."""
        before = run(seeded, 'modified < "2024-01-01"')
        assert "photo.jpgx" not in before
        assert before == ["notes.txt", "song.mp3"]

    def test_type_image(self, seeded):
        """Extension lookup is case-insensitive; unknown extensions aren't images."""
        assert run(seeded, 'type = "image"') == ["beach.JPG"]

    def test_type_directory(self, seeded):
        """Only directories are in the directory category."""
        assert run(seeded, 'type = "directory"') == ["projects"]

    def test_type_not_equal(self, seeded):
        """!= is the negation of category membership."""
        assert run(seeded, 'type != "image"') == [
            "clip.mp4", "notes.txt", "photo.jpgx", "projects", "report.pdf", "song.mp3",
        ]

    def test_type_in(self, seeded):
        assert run(seeded, 'type IN ("video", "audio")') == ["clip.mp4", "song.mp3"]


class TestDirectoriesAndSize:
    """Any size leaf removes directories from the candidates."""

    def test_size_under_or_excludes_directories(self, seeded):
        """projects is tagged work but still excluded."""
        assert run(seeded, 'tag = "work" OR size > 1GB') == ["notes.txt", "report.pdf"]

    def test_size_under_not_excludes_directories(self, seeded):
        """NOT size > X still never yields a directory."""
        result = run(seeded, "NOT size > 1GB")
        assert "projects" not in result
        assert len(result) == 6

    def test_without_size_directories_included(self, seeded):
        assert "projects" in run(seeded, 'tag = "work"')


class TestSoftDelete:
    """Soft-deleted items never reach a predicate."""

    def test_deleted_item_hidden(self, seeded):
        """old.zip is tagged work but deleted."""
        assert "old.zip" not in run(seeded, 'tag = "work"')
        assert "old.zip" not in run(seeded, 'NOT tag = "personal"')

    def test_restored_item_visible(self, seeded):
        """Restoring makes the item searchable again."""
        seeded.store.restore_item(seeded.items["old.zip"])
        assert "old.zip" in run(seeded, 'type = "archive"')

    def test_deleted_rows_filtered_even_if_repository_returns_them(self, seeded):
        """A repository that leaks deleted rows is still filtered."""

        class LeakyRepository:
            def __init__(self, inner):
                self._inner = inner

            def read_snapshot(self, with_tags=True):
                items, tag_map = self._inner.read_snapshot(with_tags)
                ghost = Item(id=999, path="/ghost.txt", size=1, is_deleted=True)
                return items + [ghost], tag_map

            def __getattr__(self, name):
                return getattr(self._inner, name)

        result = evaluate(parse_query('name ~ "*.txt"'), LeakyRepository(seeded.store))
        assert [item.name for item in result] == ["notes.txt"]


class TestSorting:
    """Deterministic ordering."""

    def test_sort_by_size_desc(self, seeded):
        """Largest first; items without a size go last."""
        assert run(seeded, 'tag = "work" OR tag = "personal"', sort_key="size", sort_order="desc") == [
            "photo.jpgx", "clip.mp4", "beach.JPG", "report.pdf", "notes.txt", "projects",
        ]

    def test_sort_by_size_asc(self, seeded):
        """Missing sizes sort first ascending."""
        result = run(seeded, 'tag = "work"', sort_key="size")
        assert result == ["projects", "notes.txt", "report.pdf"]

    def test_sort_by_date(self, seeded):
        assert run(seeded, 'tag = "draft"', sort_key="date") == ["notes.txt", "clip.mp4"]

    def test_sort_by_path(self, seeded):
        assert run(seeded, 'tag = "work"', sort_key="path") == ["notes.txt", "report.pdf", "projects"]

    def test_ties_broken_by_id_both_orders(self):
        """Equal keys keep ascending id order, ascending or descending."""
        items = [
            Item(id=3, path="/b/same.txt", size=5),
            Item(id=1, path="/a/same.txt", size=5),
            Item(id=2, path="/c/other.txt", size=9),
        ]
        assert [i.id for i in sort_items(items, "name", "asc")] == [2, 1, 3]
        assert [i.id for i in sort_items(items, "name", "desc")] == [1, 3, 2]
        assert [i.id for i in sort_items(items, "size", "desc")] == [2, 1, 3]

    def test_invalid_sort_key(self, seeded):
        with pytest.raises(ValueError):
            evaluate(parse_query('tag = "work"'), seeded.store, sort_key="relevance")


class TestHelpers:

    def test_glob_escapes_regex_characters(self):
        """Only * and ? are special."""
        regex = glob_to_regex("report[1].txt")
        assert regex.fullmatch("REPORT[1].TXT")
        assert not regex.fullmatch("report1.txt")

    def test_classify(self):
        assert classify(Item(id=1, path="a/b.TAR.GZ")) == "archive"
        assert classify(Item(id=1, path="C:\\music\\x.flac")) == "audio"
        assert classify(Item(id=1, path=".bashrc")) is None
        assert classify(Item(id=1, path="dir", is_directory=True)) == "directory"
