"""
Double round-robin fixture generation and week helpers.

Uses the circle method (Berger tables):
- Position 0 stays fixed, the other positions rotate one step per round
- Each round pairs position i with position (size - 1 - i)
- An odd team count gets a synthetic BYE team; fixtures against it are dropped
- The second half repeats the first half with home and away reversed
"""
import logging
from typing import Dict, List, Optional

from .errors import ConsistencyError
from .models import Fixture, FixtureResult, Team, make_bye_team

logger = logging.getLogger(__name__)


def check_unique_team_ids(teams: List[Team]):
    """Raise ConsistencyError if two teams share an identifier."""
    seen = set()
    for team in teams:
        if team.id in seen:
            logger.error(f"Duplicate team id in team list: {team.id}")
            raise ConsistencyError(f"Duplicate team id: {team.id}")
        seen.add(team.id)


def _circle_rounds(teams: List[Team]) -> List[List[tuple]]:
    """
    Build the pairings of a single round-robin.

    Returns one list of (home, away) tuples per round. The fixed team
    alternates between home and away so home counts stay balanced.
    """
    order = list(teams)
    size = len(order)
    rounds = []

    for round_idx in range(size - 1):
        pairings = []
        for i in range(size // 2):
            first = order[i]
            second = order[size - 1 - i]
            if i == 0 and round_idx % 2 == 1:
                pairings.append((second, first))
            else:
                pairings.append((first, second))
        rounds.append(pairings)
        # Keep position 0, move the last team to position 1
        order = [order[0], order[-1]] + order[1:-1]

    return rounds


def generate_round_robin(teams: List[Team]) -> List[Fixture]:
    """
    Generate the double round-robin schedule.

    Args:
        teams: Ordered team list. Identical ordering always yields identical output.

    Returns:
        Fixtures ordered by round then match. Rounds are numbered 1..2*(size-1)
        across both halves and each round is played in its own week.
        Fewer than 2 teams gives an empty schedule.
    """
    if len(teams) < 2:
        return []

    check_unique_team_ids(teams)

    team_list = list(teams)
    if len(team_list) % 2 != 0:
        team_list.append(make_bye_team())

    single_rounds = _circle_rounds(team_list)
    rounds_per_half = len(single_rounds)
    fixtures = []

    for half in range(2):
        for round_idx, pairings in enumerate(single_rounds):
            round_number = half * rounds_per_half + round_idx + 1
            match_number = 1
            for home, away in pairings:
                if home.is_bye or away.is_bye:
                    continue
                if half == 1:
                    home, away = away, home
                fixtures.append(Fixture(
                    round=round_number,
                    match=match_number,
                    week=round_number,
                    home=home,
                    away=away,
                ))
                match_number += 1

    logger.debug(f"Generated {len(fixtures)} fixtures over {2 * rounds_per_half} rounds for {len(teams)} teams")
    return fixtures


def get_total_weeks(fixtures: List[Fixture]) -> int:
    return max((fx.week for fx in fixtures), default=0)


def get_week_fixtures(fixtures: List[Fixture], week: int) -> List[Fixture]:
    return [fx for fx in fixtures if fx.week == week]


def find_fixture(fixtures: List[Fixture], fixture_key: str) -> Optional[Fixture]:
    for fx in fixtures:
        if fx.key == fixture_key:
            return fx
    return None


def _is_completed(results: Dict[str, FixtureResult], fixture: Fixture) -> bool:
    result = results.get(fixture.key)
    return result is not None and result.completed


def is_week_completed(fixtures: List[Fixture], results: Dict[str, FixtureResult], week: int) -> bool:
    """A week is complete when it has fixtures and every one has a completed result."""
    week_fixtures = get_week_fixtures(fixtures, week)
    if not week_fixtures:
        return False
    return all(_is_completed(results, fx) for fx in week_fixtures)


def get_available_weeks(fixtures: List[Fixture], results: Dict[str, FixtureResult]) -> List[int]:
    """
    Weeks open for scoring.

    Week 1 is always available; each following week opens once the
    previous one is complete.
    """
    total_weeks = get_total_weeks(fixtures)
    if total_weeks == 0:
        return []
    available = [1]
    for week in range(1, total_weeks):
        if not is_week_completed(fixtures, results, week):
            break
        available.append(week + 1)
    return available


def get_week_statistics(fixtures: List[Fixture], results: Dict[str, FixtureResult], week: int) -> Dict:
    """Progress of a single week: completed/remaining fixtures, goals and percent done."""
    week_fixtures = get_week_fixtures(fixtures, week)
    completed = [fx for fx in week_fixtures if _is_completed(results, fx)]
    total_goals = sum(
        results[fx.key].home_score + results[fx.key].away_score
        for fx in completed
    )
    percent = round(len(completed) * 100 / len(week_fixtures)) if week_fixtures else 0

    return {
        'week': week,
        'total': len(week_fixtures),
        'completed': len(completed),
        'remaining': len(week_fixtures) - len(completed),
        'total_goals': total_goals,
        'percent_complete': percent,
        'is_completed': bool(week_fixtures) and len(completed) == len(week_fixtures),
    }


def get_schedule_overview(fixtures: List[Fixture], results: Dict[str, FixtureResult], teams: List[Team]) -> Dict:
    completed = sum(1 for fx in fixtures if _is_completed(results, fx))
    return {
        'total_fixtures': len(fixtures),
        'completed_fixtures': completed,
        'total_weeks': get_total_weeks(fixtures),
        'available_weeks': get_available_weeks(fixtures, results),
        'top_points': max((t.points for t in teams), default=0),
    }
