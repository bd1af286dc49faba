"""
Single elimination bracket generation, plus the helpers shared with
double elimination (seeding, bracket order, match and round records).

Brackets are plain JSON-serializable dicts. Matches reference teams by id;
the tournament keeps a snapshot of the qualified teams in ranking order.
"""
import logging
import math
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from .errors import InputError
from .models import BracketType, MatchStatus, Team, TournamentFormat, TournamentStatus
from .round_robin import check_unique_team_ids
from .standings import rank_teams

logger = logging.getLogger(__name__)


def get_round_name(teams_in_round: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {teams_in_round}"


def calculate_bracket_size(num_teams: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_teams <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_teams))


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 teams: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Winners: 1v4 side, 2v3 side
    Final: 1v2 (if chalk)
    """
    if bracket_size <= 1:
        return [1]
    if bracket_size == 2:
        return [1, 2]

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])
    return result


def select_playoff_teams(teams: List[Team], size: int) -> List[Team]:
    """
    Rank teams and keep the top `size`.

    Raises InputError when size is outside [2, len(teams)] and
    ConsistencyError on duplicate team ids.
    """
    check_unique_team_ids(teams)
    if isinstance(size, bool) or not isinstance(size, int):
        raise InputError(f"Invalid playoff size: {size!r}")
    if size < 2 or size > len(teams):
        raise InputError(f"Playoff size must be between 2 and {len(teams)}, got {size}")
    return rank_teams(teams)[:size]


def new_match(match_id: str, bracket: BracketType, round_number: int, round_name: str,
              match_number: int, team1: Optional[str] = None, team2: Optional[str] = None,
              seeds: Optional[List] = None, waiting_for: Optional[List] = None) -> Dict:
    """Create a pending match record."""
    return {
        'id': match_id,
        'team1': team1,
        'team2': team2,
        'winner': None,
        'loser': None,
        'score1': None,
        'score2': None,
        'status': MatchStatus.PENDING.value,
        'bracket': bracket.value,
        'round': round_number,
        'round_name': round_name,
        'match_number': match_number,
        'seeds': seeds,
        'waiting_for': waiting_for or [None, None],
        'winner_to': None,
        'loser_to': None,
    }


def new_round(round_number: int, name: str, bracket: BracketType, matches: List[Dict]) -> Dict:
    return {
        'round': round_number,
        'name': name,
        'bracket': bracket.value,
        'matches': matches,
    }


def slot_target(match_id: str, slot: int) -> Dict:
    return {'match': match_id, 'slot': slot}


def new_tournament(tournament_format: TournamentFormat, qualified: List[Team],
                   tournament_id: Optional[str] = None) -> Dict:
    """Tournament skeleton with the ranked team snapshot."""
    now = datetime.now().isoformat()
    return {
        'id': tournament_id or uuid.uuid4().hex[:12],
        'format': tournament_format.value,
        'teams': [
            {**team.to_dict(), 'seed': seed}
            for seed, team in enumerate(qualified, start=1)
        ],
        'upper_bracket': [],
        'lower_bracket': [],
        'finals': None,
        'status': TournamentStatus.ACTIVE.value,
        'champion': None,
        'runner_up': None,
        'eliminated': [],
        'created_at': now,
        'updated_at': now,
    }


def create_bracket_matchups(qualified: List[Team]) -> List[Dict]:
    """
    First round for single elimination.

    Pairs seed 1 vs seed k, seed 2 vs seed k-1, ... For odd k the middle
    seed gets a bye. Pairs are laid out in standard bracket order so that
    when higher seeds win, seed 1 and seed 2 only meet in the final.
    """
    num_teams = len(qualified)
    if num_teams < 2:
        return []

    seed_to_team = {seed: team.id for seed, team in enumerate(qualified, start=1)}
    num_pairs = (num_teams + 1) // 2
    round_name = get_round_name(num_teams)

    matchups = []
    match_number = 1
    for pair_index in _generate_bracket_order(calculate_bracket_size(num_pairs)):
        if pair_index > num_pairs:
            continue
        seed1 = pair_index
        seed2 = num_teams + 1 - pair_index
        if seed1 == seed2:
            team2, seeds = None, [seed1, None]
        else:
            team2, seeds = seed_to_team[seed2], [seed1, seed2]
        matchups.append(new_match(
            f"R1-M{match_number}", BracketType.UPPER, 1, round_name, match_number,
            team1=seed_to_team[seed1], team2=team2, seeds=seeds,
        ))
        match_number += 1

    return matchups


def create_next_round(previous_round: Dict) -> Optional[Dict]:
    """
    Build the next single elimination round from a resolved round.

    Winners are paired in bracket order; with an odd number of winners the
    first one (the strongest path) gets a bye. Returns None when at most one
    winner remains.
    """
    winners = [m['winner'] for m in previous_round['matches'] if m['winner'] is not None]
    if len(winners) <= 1:
        return None

    round_number = previous_round['round'] + 1
    round_name = get_round_name(len(winners))
    matches = []
    match_number = 1

    if len(winners) % 2 == 1:
        matches.append(new_match(
            f"R{round_number}-M{match_number}", BracketType.UPPER, round_number, round_name,
            match_number, team1=winners[0],
        ))
        match_number += 1
        winners = winners[1:]

    for i in range(0, len(winners), 2):
        matches.append(new_match(
            f"R{round_number}-M{match_number}", BracketType.UPPER, round_number, round_name,
            match_number, team1=winners[i], team2=winners[i + 1],
        ))
        match_number += 1

    return new_round(round_number, round_name, BracketType.UPPER, matches)


def generate_single_elimination(teams: List[Team], size: int, tournament_id: Optional[str] = None) -> Dict:
    """
    Generate a single elimination tournament.

    Only the first round is built; later rounds are appended as earlier
    rounds complete.
    """
    qualified = select_playoff_teams(teams, size)
    tournament = new_tournament(TournamentFormat.SINGLE_ELIMINATION, qualified, tournament_id)

    first_round = create_bracket_matchups(qualified)
    tournament['upper_bracket'] = [
        new_round(1, first_round[0]['round_name'], BracketType.UPPER, first_round)
    ]
    tournament['metadata'] = {
        'total_teams': len(qualified),
        'byes': len(qualified) % 2,
        'qualified': [team.id for team in qualified],
    }

    logger.info(f"Built single elimination bracket {tournament['id']} for {len(qualified)} teams")
    return tournament
