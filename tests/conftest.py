import os as _os
import sys

import pytest

# Ensure project root is importable (so `import main` / `import cli` work without installing)
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from mco import db  # noqa: E402
from mco.platform import InMemoryPlatform  # noqa: E402
from mco.reconciler import ClusterOperator  # noqa: E402
from mco.render import default_renderer  # noqa: E402
from mco.settings import Settings  # noqa: E402
from factories import make_cluster  # noqa: E402


@pytest.fixture(autouse=True)
def journal(tmp_path, monkeypatch):
    """Isolated sqlite journal per test."""
    monkeypatch.setattr(db, "settings", Settings(db_path=str(tmp_path / "mco.db")))
    db.init_db()
    return db


@pytest.fixture
def platform():
    return InMemoryPlatform()


@pytest.fixture(scope="session")
def renderer():
    return default_renderer()


@pytest.fixture
def operator(platform, renderer):
    return ClusterOperator(platform, renderer, timeout_s=3.0)


@pytest.fixture
def cluster():
    return make_cluster()
