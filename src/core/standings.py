"""
League standings from fixture results.

Two ways to update team statistics:
- Incremental: result_delta() gives the change caused by one result;
  apply_result() applies it, first rolling back a previous result for the
  same fixture so a correction never double counts
- Authoritative: calculate_standings() rebuilds every table row from the
  stored results alone
"""
import logging
from typing import Dict, List, Optional, Tuple

from .errors import InputError
from .models import Fixture, FixtureResult, Team

logger = logging.getLogger(__name__)

DEFAULT_POINTS = {'win': 3, 'draw': 1, 'loss': 0}

STAT_KEYS = ('wins', 'losses', 'draws', 'points')


def validate_score(value, label: str = 'score') -> int:
    """Scores must be present, integral and non-negative."""
    if value is None or value == '':
        raise InputError(f"Missing {label}")
    if isinstance(value, bool):
        raise InputError(f"Invalid {label}: {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise InputError(f"Invalid {label}: {value!r}")
        value = int(value)
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise InputError(f"Invalid {label}: {value!r}")
    if not isinstance(value, int):
        raise InputError(f"Invalid {label}: {value!r}")
    if value < 0:
        raise InputError(f"{label.capitalize()} cannot be negative")
    return value


def _empty_delta() -> Dict[str, int]:
    return {key: 0 for key in STAT_KEYS}


def result_delta(home_score: int, away_score: int, points: Optional[Dict] = None) -> Tuple[Dict, Dict]:
    """
    Statistic changes produced by a single result.

    Returns (home_delta, away_delta). Exactly one of home win, away win or
    draw applies.
    """
    points = points or DEFAULT_POINTS
    home = _empty_delta()
    away = _empty_delta()

    if home_score > away_score:
        home['wins'] = 1
        home['points'] = points['win']
        away['losses'] = 1
        away['points'] = points['loss']
    elif away_score > home_score:
        away['wins'] = 1
        away['points'] = points['win']
        home['losses'] = 1
        home['points'] = points['loss']
    else:
        home['draws'] = 1
        away['draws'] = 1
        home['points'] = points['draw']
        away['points'] = points['draw']

    return home, away


def _subtract(new: Dict, old: Dict) -> Dict:
    return {key: new.get(key, 0) - old.get(key, 0) for key in STAT_KEYS}


def correction_delta(result: FixtureResult, previous: Optional[FixtureResult] = None,
                     points: Optional[Dict] = None) -> Tuple[Dict, Dict]:
    """
    Net change when `result` replaces `previous` for the same fixture.

    Submitting identical scores twice yields an all-zero delta.
    """
    home, away = result_delta(result.home_score, result.away_score, points)
    if previous is not None and previous.completed:
        old_home, old_away = result_delta(previous.home_score, previous.away_score, points)
        home = _subtract(home, old_home)
        away = _subtract(away, old_away)
    return home, away


def is_zero_delta(delta: Dict) -> bool:
    return all(delta.get(key, 0) == 0 for key in STAT_KEYS)


def apply_result(home: Team, away: Team, result: FixtureResult,
                 previous: Optional[FixtureResult] = None, points: Optional[Dict] = None):
    """Apply a result to both teams, rolling back `previous` first."""
    home_delta, away_delta = correction_delta(result, previous, points)
    home.apply_delta(home_delta)
    away.apply_delta(away_delta)
    return home_delta, away_delta


def rank_teams(teams: List[Team]) -> List[Team]:
    """Ranking order: points, then wins, then fewer losses, then name."""
    return sorted(teams, key=lambda t: (-t.points, -t.wins, t.losses, t.name.lower(), t.id))


def calculate_standings(teams: List[Team], fixtures: List[Fixture],
                        results: Dict[str, FixtureResult], points: Optional[Dict] = None) -> List[Dict]:
    """
    Build the league table from stored results.

    Returns: [{'team_id', 'team', 'played', 'wins', 'draws', 'losses',
               'goals_for', 'goals_against', 'goal_difference', 'points',
               'win_percentage', 'position'}, ...]

    Ranking: points -> wins -> goal difference -> goals for -> name
    """
    points = points or DEFAULT_POINTS
    rows = {}
    for team in teams:
        rows[team.id] = {
            'team_id': team.id,
            'team': team.name,
            'played': 0,
            'wins': 0,
            'draws': 0,
            'losses': 0,
            'goals_for': 0,
            'goals_against': 0,
            'points': 0,
        }

    for fixture in fixtures:
        result = results.get(fixture.key)
        if result is None or not result.completed:
            continue
        home_row = rows.get(fixture.home.id)
        away_row = rows.get(fixture.away.id)
        if home_row is None or away_row is None:
            logger.warning(f"Result {fixture.key} references a team that is no longer registered")
            continue

        home_delta, away_delta = result_delta(result.home_score, result.away_score, points)
        for row, delta, scored, conceded in (
            (home_row, home_delta, result.home_score, result.away_score),
            (away_row, away_delta, result.away_score, result.home_score),
        ):
            row['played'] += 1
            row['goals_for'] += scored
            row['goals_against'] += conceded
            for key in STAT_KEYS:
                row[key] += delta[key]

    for row in rows.values():
        row['goal_difference'] = row['goals_for'] - row['goals_against']
        row['win_percentage'] = round(row['wins'] * 100 / row['played'], 1) if row['played'] else 0.0

    table = sorted(
        rows.values(),
        key=lambda r: (-r['points'], -r['wins'], -r['goal_difference'], -r['goals_for'], r['team'].lower())
    )
    for position, row in enumerate(table, start=1):
        row['position'] = position
    return table


def stats_from_standings(table: List[Dict]) -> Dict[str, Dict]:
    """Absolute {wins, losses, draws, points} per team id, as stored on Team records."""
    return {
        row['team_id']: {key: row[key] for key in STAT_KEYS}
        for row in table
    }
