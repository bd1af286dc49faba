"""
Double elimination bracket generation.

In double elimination:
- Teams must lose twice to be eliminated
- Upper Bracket: the top seeds (at most 4), no losses yet
- Lower Bracket: teams ranked below the upper cut start here; upper bracket
  losers drop in, a lower bracket loss eliminates
- Grand Finals: Upper bracket champion vs Lower bracket champion

Lower bracket layout:
- Lower-start teams play each other first (single elimination among
  themselves, byes for non powers of two) until one survivor remains
- The survivor waits in Lower Round 2 for the higher-ranked Upper Round 1 loser
- The next round receives the lower-ranked Upper Round 1 loser
- One more round per later upper round absorbs its loser, ending in Lower Finals

Slots that will be filled by a future result carry a waiting-for marker
("Winner U1-M1", "Loser U2-M1", ...) so the progression engine never treats
them as byes.
"""
import logging
import math
from typing import Dict, List, Optional

from .elimination import (
    _generate_bracket_order,
    calculate_bracket_size,
    new_match,
    new_round,
    new_tournament,
    select_playoff_teams,
    slot_target,
)
from .models import BracketType, Team, TournamentFormat

logger = logging.getLogger(__name__)

MAX_UPPER_START_TEAMS = 4
GRAND_FINALS_ID = 'GF'

HIGHER_RANKED_LOSER = 'Higher-ranked loser U1'
LOWER_RANKED_LOSER = 'Lower-ranked loser U1'


def get_upper_round_name(round_number: int, total_rounds: int) -> str:
    if round_number == total_rounds:
        return "Upper Finals"
    return f"Upper Round {round_number}"


def get_lower_round_name(round_number: int, last_round: int) -> str:
    if round_number == last_round:
        return "Lower Finals"
    return f"Lower Round {round_number}"


def _upper_first_round_pairs(upper_count: int) -> List[tuple]:
    """
    Seed pairs for the first upper round.

    Exactly 4 teams play 1v3 and 2v4. Fewer teams use the standard bracket
    order, the missing seed becoming a bye (None).
    """
    if upper_count == 4:
        return [(1, 3), (2, 4)]
    bracket_size = calculate_bracket_size(upper_count)
    order = _generate_bracket_order(bracket_size)
    pairs = []
    for i in range(0, len(order), 2):
        seed1, seed2 = order[i], order[i + 1]
        pairs.append((
            seed1 if seed1 <= upper_count else None,
            seed2 if seed2 <= upper_count else None,
        ))
    return pairs


def _generate_upper_bracket(seed_to_team: Dict[int, str], upper_count: int) -> List[Dict]:
    """Upper rounds, halving until the single Upper Finals match."""
    first_pairs = _upper_first_round_pairs(upper_count)
    total_rounds = int(math.log2(len(first_pairs))) + 1
    rounds = []

    for round_number in range(1, total_rounds + 1):
        round_name = get_upper_round_name(round_number, total_rounds)
        matches = []
        if round_number == 1:
            for i, (seed1, seed2) in enumerate(first_pairs):
                matches.append(new_match(
                    f"U1-M{i + 1}", BracketType.UPPER, 1, round_name, i + 1,
                    team1=seed_to_team.get(seed1),
                    team2=seed_to_team.get(seed2),
                    seeds=[seed1, seed2],
                ))
        else:
            previous = rounds[-1]['matches']
            for i in range(len(previous) // 2):
                matches.append(new_match(
                    f"U{round_number}-M{i + 1}", BracketType.UPPER, round_number, round_name, i + 1,
                    waiting_for=[f"Winner {previous[i * 2]['id']}", f"Winner {previous[i * 2 + 1]['id']}"],
                ))
            for i, prev_match in enumerate(previous):
                prev_match['winner_to'] = slot_target(matches[i // 2]['id'], i % 2)
        rounds.append(new_round(round_number, round_name, BracketType.UPPER, matches))

    return rounds


def _generate_lower_start_rounds(seed_to_team: Dict[int, str], first_seed: int, lower_count: int) -> List[Dict]:
    """
    Rounds in which lower-start teams play each other down to one survivor.

    Local seeds are paired in standard bracket order; overall seed is
    first_seed + local seed - 1.
    """
    if lower_count < 2:
        return []

    bracket_size = calculate_bracket_size(lower_count)
    order = _generate_bracket_order(bracket_size)
    total_rounds = int(math.log2(bracket_size))
    rounds = []

    for round_number in range(1, total_rounds + 1):
        round_name = f"Lower Round {round_number}"
        matches = []
        if round_number == 1:
            for i in range(0, len(order), 2):
                local1, local2 = order[i], order[i + 1]
                seed1 = first_seed + local1 - 1 if local1 <= lower_count else None
                seed2 = first_seed + local2 - 1 if local2 <= lower_count else None
                match_number = i // 2 + 1
                matches.append(new_match(
                    f"L1-M{match_number}", BracketType.LOWER, 1, round_name, match_number,
                    team1=seed_to_team.get(seed1),
                    team2=seed_to_team.get(seed2),
                    seeds=[seed1, seed2],
                ))
        else:
            previous = rounds[-1]['matches']
            for i in range(len(previous) // 2):
                matches.append(new_match(
                    f"L{round_number}-M{i + 1}", BracketType.LOWER, round_number, round_name, i + 1,
                    waiting_for=[f"Winner {previous[i * 2]['id']}", f"Winner {previous[i * 2 + 1]['id']}"],
                ))
            for i, prev_match in enumerate(previous):
                prev_match['winner_to'] = slot_target(matches[i // 2]['id'], i % 2)
        rounds.append(new_round(round_number, round_name, BracketType.LOWER, matches))

    return rounds


def _generate_lower_bracket(seed_to_team: Dict[int, str], upper_rounds: List[Dict],
                            upper_count: int, lower_count: int) -> List[Dict]:
    """
    Full lower bracket: lower-start rounds, then one drop-in round per
    source of upper bracket losers.

    Upper Round 1 losers are split by rank (higher-ranked first), later
    upper rounds feed their losers match by match.
    """
    rounds = _generate_lower_start_rounds(seed_to_team, upper_count + 1, lower_count)

    # Survivor of the lower-start group: a match winner, a lone qualifier, or nobody
    if rounds:
        survivor_source = rounds[-1]['matches'][0]
        survivor_team = None
        survivor_marker = f"Winner {survivor_source['id']}"
    else:
        survivor_source = None
        survivor_team = seed_to_team.get(upper_count + 1) if lower_count == 1 else None
        survivor_marker = None

    # Each entry is (marker for the dropped-in team, how it gets there)
    drop_ins = []
    has_first_round = len(upper_rounds) > 1
    if has_first_round:
        drop_ins.append(HIGHER_RANKED_LOSER)
        drop_ins.append(LOWER_RANKED_LOSER)
    for upper_round in upper_rounds[1:] if has_first_round else upper_rounds:
        drop_ins.append(upper_round['matches'][0])

    start_number = len(rounds) + 1
    if has_first_round:
        start_number = max(2, start_number)
    last_number = start_number + len(drop_ins) - 1

    losers_to = []
    for offset, drop_in in enumerate(drop_ins):
        round_number = start_number + offset
        round_name = get_lower_round_name(round_number, last_number)
        match_id = f"L{round_number}-M1"

        if isinstance(drop_in, str):
            drop_marker = drop_in
            losers_to.append(slot_target(match_id, 1))
        else:
            drop_marker = f"Loser {drop_in['id']}"
            drop_in['loser_to'] = slot_target(match_id, 1)

        match = new_match(
            match_id, BracketType.LOWER, round_number, round_name, 1,
            team1=survivor_team,
            waiting_for=[survivor_marker, drop_marker],
        )
        if survivor_source is not None:
            survivor_source['winner_to'] = slot_target(match_id, 0)
        rounds.append(new_round(round_number, round_name, BracketType.LOWER, [match]))

        survivor_source = match
        survivor_team = None
        survivor_marker = f"Winner {match_id}"

    if has_first_round:
        upper_rounds[0]['losers_to'] = losers_to
        upper_rounds[0]['losers_placed'] = False
    return rounds


def generate_double_elimination_bracket(teams: List[Team], size: int, tournament_id: Optional[str] = None) -> Dict:
    """
    Generate complete double elimination bracket structure.

    Args:
        teams: Registered teams with their statistics
        size: Number of qualifying teams, 2 <= size <= len(teams)
        tournament_id: Optional id, generated when omitted

    Returns the tournament dict with:
    - 'teams': qualified teams in seed order
    - 'upper_bracket' / 'lower_bracket': ordered rounds
    - 'finals': the Grand Finals round (one match, both slots empty)
    - 'metadata': upper/lower start group sizes and qualified team ids
    """
    qualified = select_playoff_teams(teams, size)
    seed_to_team = {seed: team.id for seed, team in enumerate(qualified, start=1)}

    upper_count = min(MAX_UPPER_START_TEAMS, len(qualified))
    lower_count = len(qualified) - upper_count

    upper_rounds = _generate_upper_bracket(seed_to_team, upper_count)
    lower_rounds = _generate_lower_bracket(seed_to_team, upper_rounds, upper_count, lower_count)

    upper_final = upper_rounds[-1]['matches'][0]
    lower_final = lower_rounds[-1]['matches'][0]
    grand_final = new_match(
        GRAND_FINALS_ID, BracketType.FINALS, 1, "Grand Finals", 1,
        waiting_for=[f"Winner {upper_final['id']}", f"Winner {lower_final['id']}"],
    )
    upper_final['winner_to'] = slot_target(GRAND_FINALS_ID, 0)
    lower_final['winner_to'] = slot_target(GRAND_FINALS_ID, 1)

    tournament = new_tournament(TournamentFormat.DOUBLE_ELIMINATION, qualified, tournament_id)
    tournament['upper_bracket'] = upper_rounds
    tournament['lower_bracket'] = lower_rounds
    tournament['finals'] = new_round(1, "Grand Finals", BracketType.FINALS, [grand_final])
    tournament['metadata'] = {
        'total_teams': len(qualified),
        'upper_bracket_teams': upper_count,
        'lower_bracket_teams': lower_count,
        'qualified': [team.id for team in qualified],
    }

    logger.info(
        f"Built double elimination bracket {tournament['id']}: "
        f"{upper_count} upper, {lower_count} lower, {len(lower_rounds)} lower rounds"
    )
    return tournament
