from enum import Enum


class BracketType(str, Enum):
    UPPER = 'upper'
    LOWER = 'lower'
    FINALS = 'finals'


class MatchStatus(str, Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'
    BYE_COMPLETED = 'bye-completed'


class TournamentStatus(str, Enum):
    ACTIVE = 'active'
    COMPLETED = 'completed'


class TournamentFormat(str, Enum):
    SINGLE_ELIMINATION = 'single-elimination'
    DOUBLE_ELIMINATION = 'double-elimination'


BYE_TEAM_ID = 'bye'


class Team:
    def __init__(self, id, name, players=None, wins=0, losses=0, points=0, draws=0):
        self.id = id
        self.name = name
        self.players = list(players) if players else []
        self.wins = wins
        self.losses = losses
        self.points = points
        self.draws = draws

    @property
    def is_bye(self):
        return self.id == BYE_TEAM_ID

    def apply_delta(self, delta):
        """Add a {wins, losses, points, draws} delta to the cumulative stats."""
        self.wins += delta.get('wins', 0)
        self.losses += delta.get('losses', 0)
        self.points += delta.get('points', 0)
        self.draws += delta.get('draws', 0)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'players': list(self.players),
            'wins': self.wins,
            'losses': self.losses,
            'draws': self.draws,
            'points': self.points,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=str(data['id']),
            name=data.get('name', str(data['id'])),
            players=data.get('players') or [],
            wins=data.get('wins', 0) or 0,
            losses=data.get('losses', 0) or 0,
            points=data.get('points', 0) or 0,
            draws=data.get('draws', 0) or 0,
        )

    def __eq__(self, other):
        return isinstance(other, Team) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"Team(id={self.id}, name={self.name}, wins={self.wins}, losses={self.losses}, points={self.points})"


def make_bye_team():
    return Team(id=BYE_TEAM_ID, name='BYE')


class Fixture:
    def __init__(self, round, match, week, home, away):
        self.round = round
        self.match = match
        self.week = week
        self.home = home
        self.away = away

    @property
    def key(self):
        return get_fixture_key(self.round, self.match, self.home.id, self.away.id)

    def to_dict(self):
        return {
            'key': self.key,
            'round': self.round,
            'match': self.match,
            'week': self.week,
            'home': self.home.id,
            'away': self.away.id,
        }

    def __repr__(self):
        return f"Fixture(round={self.round}, match={self.match}, home={self.home.name}, away={self.away.name})"


def get_fixture_key(round_number, match_number, home_id, away_id):
    """Composite fixture key: round-match-homeId-awayId."""
    return f"{round_number}-{match_number}-{home_id}-{away_id}"


class FixtureResult:
    def __init__(self, fixture_key, home_score, away_score, completed=True):
        self.fixture_key = fixture_key
        self.home_score = home_score
        self.away_score = away_score
        self.completed = completed

    def to_dict(self):
        return {
            'fixture_key': self.fixture_key,
            'home_score': self.home_score,
            'away_score': self.away_score,
            'completed': self.completed,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            fixture_key=data['fixture_key'],
            home_score=data.get('home_score', 0) or 0,
            away_score=data.get('away_score', 0) or 0,
            completed=data.get('completed', True) is not False,
        )

    def __eq__(self, other):
        return isinstance(other, FixtureResult) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"FixtureResult(fixture_key={self.fixture_key}, home_score={self.home_score}, away_score={self.away_score})"
