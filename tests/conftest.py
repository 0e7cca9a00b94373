"""
Shared pytest fixtures for tagsearch tests.

Provides a real SQLite item store seeded with a small, fixed set of tag
groups, tags and items. No mocks: every search test runs the full
parse/build -> evaluate path against this store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import pytest

from tagsearch.item_store import ItemStore

MB = 1024 * 1024


def ts(year: int, month: int, day: int) -> int:
    """Unix seconds for midnight UTC on a date."""
    return int(datetime(year, month, day, tzinfo=timezone.utc).timestamp())


@dataclass
class Seeded:
    """A seeded store plus lookups from readable names to ids."""
    store: ItemStore
    tags: dict[str, int] = field(default_factory=dict)
    items: dict[str, int] = field(default_factory=dict)

    @property
    def tag_values(self) -> dict[int, str]:
        return self.store.tag_values_by_id()

    def names(self, items) -> list[str]:
        """Filenames of a result list, in result order."""
        return [item.name for item in items]


def seed_store(store: ItemStore) -> Seeded:
    """
    Populate a store.

    Groups / tags:
        Project: work, personal, urgent
        Year:    2024
        Status:  draft, final, Urgent   (same text as Project's urgent)

    Items (path, size, modified, tags):
        /docs/report.pdf       2 MB       2024-03-01   work, 2024, final
        /docs/notes.txt        1000 B     2023-06-01   work, draft
        /photos/beach.JPG      10 MB      2024-07-15   personal, 2024
        /photos/photo.jpgx     20 MB      (none)       personal
        /projects              directory  2024-01-10   work, urgent
        /music/song.mp3        5 MB       2022-01-01   Urgent
        /archive/old.zip       50 MB      2021-01-01   work         (soft-deleted)
        /videos/clip.mp4       10 MB + 1  2024-02-02   personal, draft
    """
    seeded = Seeded(store=store)

    project = store.add_tag_group("Project", color="#3366ff")
    year = store.add_tag_group("Year")
    status = store.add_tag_group("Status", color="#f00")

    for key, group, value in [
        ("work", project, "work"),
        ("personal", project, "personal"),
        ("urgent_project", project, "urgent"),
        ("2024", year, "2024"),
        ("draft", status, "draft"),
        ("final", status, "final"),
        ("urgent_status", status, "Urgent"),
    ]:
        seeded.tags[key] = store.add_tag(group.id, value).id

    for name, path, kwargs, tag_keys in [
        ("report.pdf", "/docs/report.pdf",
         dict(size=2 * MB, modified_time=ts(2024, 3, 1)), ["work", "2024", "final"]),
        ("notes.txt", "/docs/notes.txt",
         dict(size=1000, modified_time=ts(2023, 6, 1)), ["work", "draft"]),
        ("beach.JPG", "/photos/beach.JPG",
         dict(size=10 * MB, modified_time=ts(2024, 7, 15)), ["personal", "2024"]),
        ("photo.jpgx", "/photos/photo.jpgx",
         dict(size=20 * MB), ["personal"]),
        ("projects", "/projects",
         dict(is_directory=True, modified_time=ts(2024, 1, 10)), ["work", "urgent_project"]),
        ("song.mp3", "/music/song.mp3",
         dict(size=5 * MB, modified_time=ts(2022, 1, 1)), ["urgent_status"]),
        ("old.zip", "/archive/old.zip",
         dict(size=50 * MB, modified_time=ts(2021, 1, 1)), ["work"]),
        ("clip.mp4", "/videos/clip.mp4",
         dict(size=10 * MB + 1, modified_time=ts(2024, 2, 2)), ["personal", "draft"]),
    ]:
        item = store.upsert_item(path, **kwargs)
        seeded.items[name] = item.id
        for key in tag_keys:
            store.tag_item(item.id, seeded.tags[key])

    store.soft_delete_item(seeded.items["old.zip"])
    return seeded


@pytest.fixture
def item_store(tmp_path: Path):
    """Empty SQLite item store."""
    store = ItemStore(tmp_path / "items.db")
    yield store
    store.close()


@pytest.fixture
def seeded(item_store: ItemStore) -> Seeded:
    """Item store populated by seed_store()."""
    return seed_store(item_store)


@pytest.fixture
def seeder():
    """seed_store() itself, for tests that build their own store."""
    return seed_store
