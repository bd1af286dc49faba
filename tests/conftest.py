"""
Shared pytest fixtures for league tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - skip the exhaustive bracket walks
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from core.models import Team


def make_teams(count, prefix="Team"):
    """Teams t1..tN named '<prefix> A', '<prefix> B', ... with no statistics."""
    return [
        Team(id=f"t{i + 1}", name=f"{prefix} {chr(ord('A') + i)}")
        for i in range(count)
    ]


def ranked_teams(count):
    """Teams whose points strictly decrease with their number, so t1 is seed 1."""
    return [
        Team(id=f"t{i + 1}", name=f"Team {chr(ord('A') + i)}", wins=count - i, points=3 * (count - i))
        for i in range(count)
    ]


@pytest.fixture
def client():
    """Create a test client."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def temp_data_dir(tmp_path, monkeypatch):
    """Point the app at an empty temporary data directory."""
    import app as app_module

    data_dir = tmp_path / "data"
    data_dir.mkdir()
    monkeypatch.setattr(app_module, 'DATA_DIR', str(data_dir))
    return str(data_dir)


@pytest.fixture
def store(temp_data_dir):
    from storage import YamlStore
    return YamlStore(temp_data_dir)


@pytest.fixture
def sample_teams():
    """Four teams with distinct ranking statistics."""
    return ranked_teams(4)


@pytest.fixture
def registered_teams(store):
    """Four teams saved in the temporary store, in registration order."""
    teams = make_teams(4)
    store.save_teams(teams)
    return teams
