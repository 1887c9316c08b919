"""Shared pytest fixtures for the inkwell test suite."""

import pytest


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite database path."""
    return tmp_path / "test_inkwell.db"


@pytest.fixture
def db(tmp_db_path):
    """Return an initialized Database instance backed by a temp file."""
    from models.database import Database
    return Database(tmp_db_path)


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Return a Settings instance with all paths pointing to tmp_path."""
    from config.settings import Settings
    return Settings(
        _env_file=None,
        sqlite_db_path=tmp_path / "inkwell.db",
        log_dir=tmp_path / "logs",
    )


# ---------------------------------------------------------------------------
# Clock and store fixtures
# ---------------------------------------------------------------------------

class FakeClock:
    """Manually advanced monotonic clock, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def history(clock, settings):
    from stores.history import HistoryManager
    return HistoryManager(
        max_depth=settings.history_max_depth,
        coalesce_ms=settings.history_coalesce_ms,
        clock=clock,
    )


@pytest.fixture
def outline_store(db, settings):
    from stores.outline_store import OutlineStore
    return OutlineStore(db, settings)


@pytest.fixture
def block_store(db, settings, history):
    from stores.block_store import BlockStore
    return BlockStore(db, settings, history=history)


# ---------------------------------------------------------------------------
# Sample data fixtures
# ---------------------------------------------------------------------------

PROJECT_ID = 1


@pytest.fixture
def sample_outline(db):
    """Insert a small outline and return its node ids by name.

    Volume "V1" holds chapter "C1" (episodes "E1", "E2") and chapter "C2"
    (episode "E3"). Episode "E1" has three blocks.
    """
    from models.block import TextBlock
    from models.enums import NodeType
    from models.outline import ChapterNode

    ids = {}

    def add(name, parent, node_type, order):
        ids[name] = db.chapters.add(ChapterNode(
            project_id=PROJECT_ID,
            parent_id=ids.get(parent),
            title=name,
            type=node_type,
            order=order,
        ))

    add("V1", None, NodeType.VOLUME, 0)
    add("C1", "V1", NodeType.CHAPTER, 0)
    add("C2", "V1", NodeType.CHAPTER, 1)
    add("E1", "C1", NodeType.EPISODE, 0)
    add("E2", "C1", NodeType.EPISODE, 1)
    add("E3", "C2", NodeType.EPISODE, 0)

    for order, content in enumerate(["「おはよう」", "朝の光が差し込む。", ""]):
        db.text_blocks.add(TextBlock(
            chapter_id=ids["E1"], project_id=PROJECT_ID, content=content, order=order,
        ))
    return ids


@pytest.fixture
def episode(db):
    """Insert an empty episode and return its id."""
    from models.enums import NodeType
    from models.outline import ChapterNode
    return db.chapters.add(ChapterNode(
        project_id=PROJECT_ID, title="Episode", type=NodeType.EPISODE,
    ))


@pytest.fixture
def seed_blocks(db, episode):
    """Return a helper storing the given contents as the episode's blocks."""
    from models.block import TextBlock

    def _seed(contents):
        for order, content in enumerate(contents):
            db.text_blocks.add(TextBlock(
                chapter_id=episode, project_id=PROJECT_ID, content=content, order=order,
            ))
    return _seed
