"""
Bracket progression: applying match results to a tournament.

Every public function takes a tournament dict and returns a new one; the
input is never modified, so a rejected result leaves the caller's state
exactly as it was.

Match states:
- pending: waiting for teams or for a result
- completed: played, has a winner and a loser
- bye-completed: had a single team and nothing else on the way, the team
  advanced without playing. If a team is later placed in the empty slot the
  match goes back to pending and the automatic advancement is withdrawn.
"""
import copy
import logging
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from .double_elimination import generate_double_elimination_bracket
from .elimination import create_next_round, generate_single_elimination
from .errors import ConsistencyError, InputError
from .models import BracketType, MatchStatus, Team, TournamentFormat, TournamentStatus
from .standings import validate_score

logger = logging.getLogger(__name__)

SLOT_KEYS = ('team1', 'team2')


def build_bracket(teams: List[Team], size: int,
                  tournament_format: TournamentFormat = TournamentFormat.DOUBLE_ELIMINATION,
                  tournament_id: Optional[str] = None) -> Dict:
    """Build a bracket and resolve its initial byes."""
    tournament_format = TournamentFormat(tournament_format)
    if tournament_format == TournamentFormat.SINGLE_ELIMINATION:
        tournament = generate_single_elimination(teams, size, tournament_id)
    else:
        tournament = generate_double_elimination_bracket(teams, size, tournament_id)
    _resolve_byes(tournament)
    return tournament


def iter_rounds(tournament: Dict) -> Iterator[Dict]:
    """Rounds in bracket order: upper, lower, then finals."""
    for bracket_round in tournament.get('upper_bracket') or []:
        yield bracket_round
    for bracket_round in tournament.get('lower_bracket') or []:
        yield bracket_round
    if tournament.get('finals'):
        yield tournament['finals']


def iter_matches(tournament: Dict) -> Iterator[Tuple[Dict, Dict]]:
    for bracket_round in iter_rounds(tournament):
        for match in bracket_round['matches']:
            yield bracket_round, match


def find_match(tournament: Dict, match_id: str) -> Tuple[Optional[Dict], Optional[Dict]]:
    """Return (round, match) for a match id, or (None, None)."""
    for bracket_round, match in iter_matches(tournament):
        if match['id'] == match_id:
            return bracket_round, match
    return None, None


def get_team_seed(tournament: Dict, team_id: str) -> int:
    for team in tournament.get('teams', []):
        if team['id'] == team_id:
            return team['seed']
    raise ConsistencyError(f"Team {team_id} is not part of tournament {tournament.get('id')}")


def is_resolved(match: Dict) -> bool:
    return match['status'] != MatchStatus.PENDING.value


def is_playable(match: Dict) -> bool:
    """Both teams known and no result yet."""
    return (match['status'] == MatchStatus.PENDING.value
            and match['team1'] is not None and match['team2'] is not None)


def get_playable_matches(tournament: Dict) -> List[Dict]:
    return [match for _, match in iter_matches(tournament) if is_playable(match)]


def record_match_result(tournament: Dict, match_id: str, score1, score2) -> Dict:
    """
    Record a knockout result and advance the bracket.

    Args:
        tournament: Current tournament (not modified)
        match_id: Id of a playable match
        score1, score2: Scores of team1 and team2; ties are rejected

    Returns:
        The updated tournament

    Raises:
        InputError: bad scores, tie, unknown or unplayable match
        ConsistencyError: the advancement would corrupt the bracket
    """
    score1 = validate_score(score1, 'score1')
    score2 = validate_score(score2, 'score2')
    if score1 == score2:
        raise InputError("Ties are not allowed in knockout matches")

    if tournament.get('status') == TournamentStatus.COMPLETED.value:
        raise InputError("Tournament is already completed")

    updated = copy.deepcopy(tournament)
    bracket_round, match = find_match(updated, match_id)
    if match is None:
        raise InputError(f"Unknown match: {match_id}")
    if is_resolved(match):
        raise InputError(f"Match {match_id} is already completed")
    if match['team1'] is None or match['team2'] is None:
        raise InputError(f"Match {match_id} is waiting for its opponents")

    if score1 > score2:
        winner, loser = match['team1'], match['team2']
    else:
        winner, loser = match['team2'], match['team1']

    match.update({
        'score1': score1,
        'score2': score2,
        'winner': winner,
        'loser': loser,
        'status': MatchStatus.COMPLETED.value,
    })

    try:
        _route_result(updated, bracket_round, match)
        _resolve_byes(updated)
    except ConsistencyError as e:
        logger.error(f"Rejected result for {match_id} in tournament {updated.get('id')}: {e.message}")
        raise

    updated['updated_at'] = datetime.now().isoformat()
    logger.info(f"Match {match_id}: {winner} beat {loser} {max(score1, score2)}-{min(score1, score2)}")
    return updated


def _slot_key(slot: int) -> str:
    if slot not in (0, 1):
        raise ConsistencyError(f"Invalid slot index: {slot}")
    return SLOT_KEYS[slot]


def _target_match(tournament: Dict, target: Dict) -> Dict:
    _, match = find_match(tournament, target['match'])
    if match is None:
        raise ConsistencyError(f"Advancement target {target['match']} not found")
    return match


def place_team(tournament: Dict, target: Dict, team_id: str):
    """
    Put a team into a bracket slot.

    An occupied slot is never overwritten. A bye-completed match receiving
    an opponent goes back to pending.
    """
    match = _target_match(tournament, target)
    key = _slot_key(target['slot'])

    if match[key] is not None:
        raise ConsistencyError(
            f"Slot {target['slot'] + 1} of {match['id']} is already occupied by {match[key]}"
        )
    if match['status'] == MatchStatus.COMPLETED.value:
        raise ConsistencyError(f"Cannot place {team_id} into completed match {match['id']}")

    match[key] = team_id
    match['waiting_for'][target['slot']] = None

    if match['status'] == MatchStatus.BYE_COMPLETED.value:
        _reopen_bye(tournament, match)

    logger.debug(f"Placed {team_id} into {match['id']} slot {target['slot'] + 1}")


def _clear_marker(tournament: Dict, target: Optional[Dict]):
    """The source of a waiting slot resolved without producing a team."""
    if target is None:
        return
    match = _target_match(tournament, target)
    match['waiting_for'][target['slot']] = None


def _reopen_bye(tournament: Dict, match: Dict):
    """Undo an automatic bye advancement so the match can be played."""
    occupant = match['winner']
    if occupant is not None:
        if match['winner_to'] is not None:
            _withdraw(tournament, match['winner_to'], occupant, match['id'])
        elif match['bracket'] == BracketType.FINALS.value and tournament.get('champion') == occupant:
            tournament['champion'] = None
            tournament['status'] = TournamentStatus.ACTIVE.value
    match['winner'] = None
    match['loser'] = None
    match['status'] = MatchStatus.PENDING.value
    logger.debug(f"Bye in {match['id']} reopened for play")


def _withdraw(tournament: Dict, target: Dict, team_id: str, source_id: str):
    """Take back a team that advanced through a bye."""
    match = _target_match(tournament, target)
    key = _slot_key(target['slot'])
    if match[key] != team_id:
        raise ConsistencyError(f"Expected {team_id} in {match['id']} slot {target['slot'] + 1}")
    if match['status'] == MatchStatus.COMPLETED.value:
        raise ConsistencyError(f"Cannot withdraw {team_id}: {match['id']} has already been played")
    if match['status'] == MatchStatus.BYE_COMPLETED.value:
        _reopen_bye(tournament, match)
    match[key] = None
    match['waiting_for'][target['slot']] = f"Winner {source_id}"


def _route_result(tournament: Dict, bracket_round: Dict, match: Dict):
    """Send the winner and loser of a resolved match to their next slots."""
    winner = match['winner']
    loser = match['loser']
    single = tournament.get('format') == TournamentFormat.SINGLE_ELIMINATION.value

    if winner is not None:
        if match['winner_to'] is not None:
            place_team(tournament, match['winner_to'], winner)
        elif match['bracket'] == BracketType.FINALS.value:
            _complete_tournament(tournament, winner, loser)
    elif match['winner_to'] is not None:
        _clear_marker(tournament, match['winner_to'])

    if single:
        if loser is not None:
            tournament['eliminated'].append(loser)
        return

    if match['bracket'] == BracketType.UPPER.value:
        if match['loser_to'] is not None:
            if loser is not None:
                place_team(tournament, match['loser_to'], loser)
            else:
                _clear_marker(tournament, match['loser_to'])
        if 'losers_to' in bracket_round:
            _drop_ranked_losers(tournament, bracket_round)
    elif match['bracket'] == BracketType.LOWER.value and loser is not None:
        tournament['eliminated'].append(loser)


def _drop_ranked_losers(tournament: Dict, bracket_round: Dict):
    """
    Move the losers of a fully resolved upper round into the lower bracket.

    Losers are ordered by seed: the higher-ranked one takes the first
    target (the earlier lower round). Targets left without a loser have
    their markers cleared so the waiting team can advance.
    """
    if bracket_round.get('losers_placed'):
        return
    if not all(is_resolved(m) for m in bracket_round['matches']):
        return

    losers = [m['loser'] for m in bracket_round['matches'] if m['loser'] is not None]
    losers.sort(key=lambda team_id: get_team_seed(tournament, team_id))

    targets = bracket_round['losers_to']
    if len(losers) > len(targets):
        raise ConsistencyError(f"{bracket_round['name']} produced more losers than lower bracket slots")

    for i, target in enumerate(targets):
        if i < len(losers):
            place_team(tournament, target, losers[i])
        else:
            _clear_marker(tournament, target)
    bracket_round['losers_placed'] = True


def _complete_tournament(tournament: Dict, champion: str, runner_up: Optional[str]):
    tournament['status'] = TournamentStatus.COMPLETED.value
    tournament['champion'] = champion
    tournament['runner_up'] = runner_up
    if runner_up is not None and runner_up not in tournament['eliminated']:
        tournament['eliminated'].append(runner_up)
    logger.info(f"Tournament {tournament.get('id')} completed, champion: {champion}")


def _resolve_byes(tournament: Dict):
    """
    Auto-complete matches that can only go one way.

    Repeats until nothing changes: a pending match with exactly one team and
    no waiting-for marker becomes a bye; a pending match with no team and no
    marker is void. Single elimination rounds are appended here as well.
    """
    changed = True
    while changed:
        changed = False
        for bracket_round, match in list(iter_matches(tournament)):
            if match['status'] != MatchStatus.PENDING.value:
                continue
            if any(marker is not None for marker in match['waiting_for']):
                continue
            teams = [match[key] for key in SLOT_KEYS if match[key] is not None]
            if len(teams) == 2:
                continue

            match['winner'] = teams[0] if teams else None
            match['loser'] = None
            match['status'] = MatchStatus.BYE_COMPLETED.value
            if teams:
                logger.debug(f"{match['id']}: {teams[0]} advances on a bye")
            else:
                logger.debug(f"{match['id']}: void match, no teams left to play it")
            _route_result(tournament, bracket_round, match)
            changed = True

        if tournament.get('format') == TournamentFormat.SINGLE_ELIMINATION.value:
            changed = _advance_single_elimination(tournament) or changed


def _advance_single_elimination(tournament: Dict) -> bool:
    """Append the next round, or finish, once the last round is resolved."""
    if tournament['status'] == TournamentStatus.COMPLETED.value:
        return False
    rounds = tournament['upper_bracket']
    last_round = rounds[-1]
    if not all(is_resolved(m) for m in last_round['matches']):
        return False

    next_round = create_next_round(last_round)
    if next_round is not None:
        rounds.append(next_round)
        return True

    final = last_round['matches'][-1]
    _complete_tournament(tournament, final['winner'], final['loser'])
    return True


def get_bracket_summary(tournament: Dict) -> Dict:
    """Counts for display: matches by status and playable matches."""
    counts = {status.value: 0 for status in MatchStatus}
    for _, match in iter_matches(tournament):
        counts[match['status']] += 1
    return {
        'id': tournament.get('id'),
        'format': tournament.get('format'),
        'status': tournament.get('status'),
        'champion': tournament.get('champion'),
        'matches': counts,
        'playable': [match['id'] for match in get_playable_matches(tournament)],
    }
