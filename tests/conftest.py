import pytest

from marks_ledger.db import init_db
from marks_ledger.seed import seed_all


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_ledger.db")
    return db_path


@pytest.fixture
def seeded_db(tmp_db):
    """A temporary database loaded with the bundled demo catalog."""
    init_db(tmp_db)
    seed_all(tmp_db)
    return tmp_db
