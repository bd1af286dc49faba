"""
YAML-file store for teams, fixture results, tournaments and settings.

Files live in one data directory:
    teams.yaml       - {'teams': [team, ...]} in registration order
    results.yaml     - {schedule_id: {fixture_key: result}}
    tournament.yaml  - {'active': id, 'tournaments': {id: tournament}}
    settings.yaml    - overrides merged over get_default_settings()

Every read-modify-write happens under the directory's FileLock. The lock is
reentrant, so callers may hold it across several store calls.
"""
import logging
import os
import uuid
from datetime import date, datetime
from enum import Enum

import yaml
from filelock import FileLock, Timeout

from core.errors import InputError, PersistenceError
from core.models import FixtureResult, Team

logger = logging.getLogger(__name__)

TEAMS_FILE = 'teams.yaml'
RESULTS_FILE = 'results.yaml'
TOURNAMENT_FILE = 'tournament.yaml'
SETTINGS_FILE = 'settings.yaml'

DEFAULT_SCHEDULE = 'league'

_UNSERIALIZABLE = object()


def get_default_settings():
    """Return default settings."""
    return {
        'league_name': 'League',
        'points_for_win': 3,
        'points_for_draw': 1,
        'points_for_loss': 0,
        'default_playoff_size': 8,
        'bracket_format': 'double-elimination',
        'lock_timeout_seconds': 10,
    }


def points_table(settings):
    """Points per outcome in the shape used by core.standings."""
    return {
        'win': settings.get('points_for_win', 3),
        'draw': settings.get('points_for_draw', 1),
        'loss': settings.get('points_for_loss', 0),
    }


def _convert_to_serializable(obj):
    """
    Convert a value into plain YAML-safe data.

    Tuples and sets become lists, enums their value, datetimes ISO strings.
    Dict entries holding anything else are dropped.
    """
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        cleaned = {}
        for key, value in obj.items():
            converted = _convert_to_serializable(value)
            if converted is _UNSERIALIZABLE:
                logger.debug(f"Dropping unserializable field {key!r}")
                continue
            cleaned[str(key)] = converted
        return cleaned
    if isinstance(obj, (list, tuple)):
        return [item for item in (_convert_to_serializable(v) for v in obj) if item is not _UNSERIALIZABLE]
    if isinstance(obj, set):
        return sorted(_convert_to_serializable(v) for v in obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if obj is None or isinstance(obj, (str, bool, int, float)):
        return obj
    return _UNSERIALIZABLE


class YamlStore:
    def __init__(self, data_dir, lock_timeout=10):
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)
        self.lock = FileLock(os.path.join(data_dir, '.lock'), timeout=lock_timeout)

    def _path(self, filename):
        return os.path.join(self.data_dir, filename)

    def _read(self, filename, default):
        path = self._path(filename)
        if not os.path.exists(path):
            return default
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to read {path}: {e}")
            raise PersistenceError(f"Could not read {filename}")
        return data if data else default

    def _read_mapping(self, filename):
        """Read a file that must hold a YAML mapping; {} when it is missing or empty."""
        data = self._read(filename, {})
        if not isinstance(data, dict):
            logger.error(f"Malformed {self._path(filename)}: expected a mapping, got {type(data).__name__}")
            raise PersistenceError(f"Could not read {filename}")
        return data

    def _write(self, filename, data):
        path = self._path(filename)
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to write {path}: {e}")
            raise PersistenceError(f"Could not write {filename}")

    def locked(self):
        """Context manager holding the data lock; PersistenceError on timeout."""
        return _StoreLock(self.lock)

    # Snapshots

    def snapshot(self, *filenames):
        """Raw file contents (None for a missing file) for restore()."""
        snap = {}
        for filename in filenames:
            path = self._path(filename)
            if os.path.exists(path):
                with open(path, 'rb') as f:
                    snap[filename] = f.read()
            else:
                snap[filename] = None
        return snap

    def restore(self, snap):
        for filename, content in snap.items():
            path = self._path(filename)
            if content is None:
                if os.path.exists(path):
                    os.remove(path)
            else:
                with open(path, 'wb') as f:
                    f.write(content)
        logger.warning(f"Restored {', '.join(sorted(snap))} after a failed write")

    # Settings

    def load_settings(self):
        """Load settings, merging with defaults."""
        defaults = get_default_settings()
        data = self._read(SETTINGS_FILE, {})
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed {SETTINGS_FILE}")
            return defaults
        return {**defaults, **data}

    def save_settings(self, settings):
        with self.locked():
            self._write(SETTINGS_FILE, _convert_to_serializable(settings))

    # Teams

    def list_teams(self):
        """Teams in registration order."""
        data = self._read_mapping(TEAMS_FILE)
        return [Team.from_dict(item) for item in data.get('teams', [])]

    def get_team(self, team_id):
        for team in self.list_teams():
            if team.id == team_id:
                return team
        return None

    def save_teams(self, teams):
        with self.locked():
            self._write(TEAMS_FILE, {'teams': [team.to_dict() for team in teams]})

    def create_team(self, name, players=None):
        name = (name or '').strip()
        if not name:
            raise InputError("Team name is required")
        with self.locked():
            teams = self.list_teams()
            if any(team.name.lower() == name.lower() for team in teams):
                raise InputError(f"Team '{name}' already exists")
            team = Team(id=uuid.uuid4().hex[:8], name=name,
                        players=[p.strip() for p in (players or []) if p and p.strip()])
            teams.append(team)
            self.save_teams(teams)
        logger.info(f"Created team {team.id} ({team.name})")
        return team

    def delete_team(self, team_id):
        with self.locked():
            teams = self.list_teams()
            remaining = [team for team in teams if team.id != team_id]
            if len(remaining) == len(teams):
                raise InputError(f"Unknown team: {team_id}")
            self.save_teams(remaining)
        logger.info(f"Deleted team {team_id}")

    def apply_stats_delta(self, team_id, delta):
        """Add a {wins, losses, draws, points} delta to one team's statistics."""
        with self.locked():
            teams = self.list_teams()
            for team in teams:
                if team.id == team_id:
                    team.apply_delta(delta)
                    self.save_teams(teams)
                    return team
        raise InputError(f"Unknown team: {team_id}")

    # Fixture results

    def load_fixture_results(self, schedule_id=None):
        """Results of one schedule keyed by fixture key."""
        data = self._read_mapping(RESULTS_FILE)
        stored = data.get(schedule_id or DEFAULT_SCHEDULE) or {}
        return {key: FixtureResult.from_dict({**value, 'fixture_key': key}) for key, value in stored.items()}

    def upsert_fixture_result(self, result, schedule_id=None):
        """Create or replace the single result stored for a fixture key."""
        with self.locked():
            data = self._read_mapping(RESULTS_FILE)
            schedule = data.setdefault(schedule_id or DEFAULT_SCHEDULE, {})
            schedule[result.fixture_key] = {
                'home_score': result.home_score,
                'away_score': result.away_score,
                'completed': result.completed,
            }
            self._write(RESULTS_FILE, data)

    def clear_fixture_results(self, schedule_id=None):
        with self.locked():
            data = self._read_mapping(RESULTS_FILE)
            data.pop(schedule_id or DEFAULT_SCHEDULE, None)
            self._write(RESULTS_FILE, data)

    # Tournaments

    def load_tournament(self, tournament_id=None):
        """A stored tournament, or the active one when no id is given."""
        data = self._read_mapping(TOURNAMENT_FILE)
        tournaments = data.get('tournaments') or {}
        if tournament_id is None:
            tournament_id = data.get('active')
        if tournament_id is None:
            return None
        return tournaments.get(tournament_id)

    def save_tournament(self, tournament, make_active=True):
        """
        Merge a tournament into storage, creating it if absent.

        Top-level fields are upserted over the stored document; fields that
        cannot be represented in YAML are dropped first.
        """
        cleaned = _convert_to_serializable(tournament)
        tournament_id = cleaned.get('id')
        if not tournament_id:
            raise InputError("Tournament has no id")
        with self.locked():
            data = self._read_mapping(TOURNAMENT_FILE)
            tournaments = data.setdefault('tournaments', {})
            stored = tournaments.get(tournament_id) or {}
            stored.update(cleaned)
            tournaments[tournament_id] = stored
            if make_active:
                data['active'] = tournament_id
            self._write(TOURNAMENT_FILE, data)
        return stored

    def delete_tournament(self, tournament_id=None):
        """Remove a tournament (the active one by default). Returns the removed id."""
        with self.locked():
            data = self._read_mapping(TOURNAMENT_FILE)
            tournaments = data.get('tournaments') or {}
            tournament_id = tournament_id or data.get('active')
            if tournament_id is None or tournament_id not in tournaments:
                return None
            del tournaments[tournament_id]
            if data.get('active') == tournament_id:
                data['active'] = None
            data['tournaments'] = tournaments
            self._write(TOURNAMENT_FILE, data)
        logger.info(f"Deleted tournament {tournament_id}")
        return tournament_id


class _StoreLock:
    def __init__(self, lock):
        self.lock = lock

    def __enter__(self):
        try:
            self.lock.acquire()
        except Timeout:
            logger.error(f"Timed out waiting for {self.lock.lock_file}")
            raise PersistenceError("Data store is busy, try again")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.lock.release()
        return False
