import pytest

from warden.groups.workspace import WorkspaceManager
from warden.infrastructure.database import AppDatabase


@pytest.fixture
def db() -> AppDatabase:
    """Create an in-memory database for testing."""
    app_db = AppDatabase()
    app_db._init_test()
    return app_db


@pytest.fixture
def workspace(tmp_path) -> WorkspaceManager:
    """Workspace manager rooted in a temporary directory."""
    return WorkspaceManager(groups_dir=tmp_path / "groups", data_dir=tmp_path / "data")
