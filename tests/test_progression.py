"""
Tests for bracket progression: results, advancement, byes and completion.
"""
import copy
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from core.errors import ConsistencyError, InputError
from core.models import MatchStatus, TournamentFormat
from core.progression import (
    build_bracket,
    record_match_result,
    find_match,
    get_playable_matches,
    get_bracket_summary,
    place_team,
    _resolve_byes,
)
from conftest import ranked_teams


def match(tournament, match_id):
    return find_match(tournament, match_id)[1]


def seed_of(tournament, team_id):
    return next(t['seed'] for t in tournament['teams'] if t['id'] == team_id)


def play_out(tournament, upset=False):
    """Play every match until completion; better seed wins unless upset."""
    played = 0
    while tournament['status'] == 'active':
        playable = get_playable_matches(tournament)
        assert playable, "bracket stalled with no playable match"
        m = playable[0]
        team1_better = seed_of(tournament, m['team1']) < seed_of(tournament, m['team2'])
        team1_wins = team1_better != upset
        scores = (2, 1) if team1_wins else (1, 2)
        tournament = record_match_result(tournament, m['id'], *scores)
        played += 1
        assert played < 100
    return tournament


class TestFourTeamDoubleElimination:
    """Seeding and loser placement with exactly four teams."""

    @pytest.fixture
    def bracket(self):
        return build_bracket(ranked_teams(4), 4, tournament_id="de4")

    def test_initial_playable_matches(self, bracket):
        assert [m['id'] for m in get_playable_matches(bracket)] == ["U1-M1", "U1-M2"]
        assert match(bracket, "L2-M1")['status'] == "pending"

    def test_losers_wait_for_whole_round(self, bracket):
        """One Upper Round 1 result does not place its loser yet."""
        bracket = record_match_result(bracket, "U1-M1", 3, 1)
        assert match(bracket, "U2-M1")['team1'] == "t1"
        assert match(bracket, "L2-M1")['team2'] is None
        assert bracket['upper_bracket'][0]['losers_placed'] is False

    def test_higher_ranked_loser_to_lower_round_2(self, bracket):
        bracket = record_match_result(bracket, "U1-M1", 3, 1)
        bracket = record_match_result(bracket, "U1-M2", 3, 1)
        l2 = match(bracket, "L2-M1")
        assert l2['team2'] == "t3"
        # Nobody else starts in the lower bracket, so seed 3 moves on
        assert l2['status'] == "bye-completed"
        l3 = match(bracket, "L3-M1")
        assert (l3['team1'], l3['team2']) == ("t3", "t4")
        assert l3['waiting_for'] == [None, None]

    def test_upset_losers_ordered_by_seed(self, bracket):
        """If seed 1 loses, it is the higher-ranked loser."""
        bracket = record_match_result(bracket, "U1-M1", 0, 2)
        bracket = record_match_result(bracket, "U1-M2", 2, 0)
        assert match(bracket, "L2-M1")['team2'] == "t1"
        assert match(bracket, "L3-M1")['team2'] == "t4"

    def test_full_run(self, bracket):
        for match_id in ["U1-M1", "U1-M2", "U2-M1", "L3-M1"]:
            bracket = record_match_result(bracket, match_id, 2, 1)
        # Lower Finals: t3 (from Lower Round 3) against t2 (Upper Finals loser)
        bracket = record_match_result(bracket, "L4-M1", 1, 2)
        gf = match(bracket, "GF")
        assert (gf['team1'], gf['team2']) == ("t1", "t2")
        bracket = record_match_result(bracket, "GF", 3, 0)
        assert bracket['status'] == "completed"
        assert bracket['champion'] == "t1"
        assert bracket['runner_up'] == "t2"
        assert bracket['eliminated'] == ["t4", "t3", "t2"]

    def test_grand_final_needs_both_teams(self, bracket):
        for match_id in ["U1-M1", "U1-M2", "U2-M1"]:
            bracket = record_match_result(bracket, match_id, 2, 1)
        with pytest.raises(InputError):
            record_match_result(bracket, "GF", 2, 1)

    def test_grand_final_tie_rejected(self, bracket):
        for match_id in ["U1-M1", "U1-M2", "U2-M1", "L3-M1", "L4-M1"]:
            bracket = record_match_result(bracket, match_id, 2, 1)
        with pytest.raises(InputError):
            record_match_result(bracket, "GF", 1, 1)
        assert match(bracket, "GF")['status'] == "pending"


class TestRecordMatchResult:
    """Validation and immutability."""

    @pytest.fixture
    def bracket(self):
        return build_bracket(ranked_teams(4), 4)

    def test_input_not_modified(self, bracket):
        before = copy.deepcopy(bracket)
        record_match_result(bracket, "U1-M1", 2, 0)
        assert bracket == before

    def test_scores_stored(self, bracket):
        updated = record_match_result(bracket, "U1-M1", 1, 4)
        m = match(updated, "U1-M1")
        assert (m['score1'], m['score2'], m['winner'], m['loser']) == (1, 4, "t3", "t1")
        assert m['status'] == "completed"

    @pytest.mark.parametrize("score1,score2", [(-1, 2), (None, 1), ("x", 1), (1.5, 0)])
    def test_invalid_scores(self, bracket, score1, score2):
        with pytest.raises(InputError):
            record_match_result(bracket, "U1-M1", score1, score2)

    def test_tie_rejected(self, bracket):
        with pytest.raises(InputError, match="Ties"):
            record_match_result(bracket, "U1-M1", 2, 2)

    def test_unknown_match(self, bracket):
        with pytest.raises(InputError):
            record_match_result(bracket, "U9-M9", 2, 1)

    def test_match_not_ready(self, bracket):
        with pytest.raises(InputError):
            record_match_result(bracket, "U2-M1", 2, 1)

    def test_already_completed(self, bracket):
        bracket = record_match_result(bracket, "U1-M1", 2, 1)
        with pytest.raises(InputError):
            record_match_result(bracket, "U1-M1", 0, 1)

    def test_completed_tournament_rejects_results(self, bracket):
        bracket = play_out(bracket)
        with pytest.raises(InputError):
            record_match_result(bracket, "U1-M1", 2, 1)

    def test_consistency_error_leaves_state(self, bracket):
        """A filled target slot aborts the whole update."""
        match(bracket, "U2-M1")['team1'] = "t4"
        before = copy.deepcopy(bracket)
        with pytest.raises(ConsistencyError):
            record_match_result(bracket, "U1-M1", 2, 1)
        assert bracket == before

    def test_idempotent_replay_rejected(self, bracket):
        """Submitting the same result twice does not advance twice."""
        once = record_match_result(bracket, "U1-M1", 2, 1)
        with pytest.raises(InputError):
            record_match_result(once, "U1-M1", 2, 1)
        assert match(once, "U2-M1")['team1'] == "t1"


class TestByes:
    """Automatic bye resolution and its reversal."""

    def test_three_team_upper_bye(self):
        bracket = build_bracket(ranked_teams(3), 3)
        u1 = match(bracket, "U1-M1")
        assert u1['status'] == "bye-completed"
        assert u1['winner'] == "t1"
        assert match(bracket, "U2-M1")['team1'] == "t1"

    def test_three_teams_single_loser_runs_through(self):
        """With only one Upper Round 1 loser the empty lower round is skipped."""
        bracket = build_bracket(ranked_teams(3), 3)
        bracket = record_match_result(bracket, "U1-M2", 2, 0)
        assert match(bracket, "L2-M1")['status'] == "bye-completed"
        assert match(bracket, "L3-M1")['status'] == "bye-completed"
        assert match(bracket, "L4-M1")['team1'] == "t3"

    def test_lower_opening_round_bye(self):
        """Seven teams: seed 5 has no lower opening opponent."""
        bracket = build_bracket(ranked_teams(7), 7)
        l1 = match(bracket, "L1-M1")
        assert l1['status'] == "bye-completed"
        assert match(bracket, "L2-M1")['team1'] == "t5"

    def test_bye_reopened_when_team_arrives(self):
        bracket = build_bracket(ranked_teams(4), 4)
        bracket = record_match_result(bracket, "U1-M1", 2, 1)
        bracket = record_match_result(bracket, "U1-M2", 2, 1)
        assert match(bracket, "L3-M1")['team1'] == "t3"

        place_team(bracket, {'match': 'L2-M1', 'slot': 0}, "t9")

        l2 = match(bracket, "L2-M1")
        assert l2['status'] == "pending"
        assert l2['winner'] is None
        assert (l2['team1'], l2['team2']) == ("t9", "t3")
        l3 = match(bracket, "L3-M1")
        assert l3['team1'] is None
        assert l3['waiting_for'][0] == "Winner L2-M1"

    def test_bye_not_reopened_after_next_match_played(self):
        bracket = build_bracket(ranked_teams(4), 4)
        for match_id in ["U1-M1", "U1-M2", "L3-M1"]:
            bracket = record_match_result(bracket, match_id, 2, 1)
        with pytest.raises(ConsistencyError):
            place_team(bracket, {'match': 'L2-M1', 'slot': 0}, "t9")

    def test_void_match_clears_downstream_marker(self):
        bracket = build_bracket(ranked_teams(4), 4)
        match(bracket, "L2-M1")['waiting_for'] = [None, None]
        _resolve_byes(bracket)
        l2 = match(bracket, "L2-M1")
        assert l2['status'] == "bye-completed"
        assert l2['winner'] is None
        assert match(bracket, "L3-M1")['waiting_for'] == [None, "Lower-ranked loser U1"]


class TestPlaceTeam:
    def test_occupied_slot(self):
        bracket = build_bracket(ranked_teams(4), 4)
        with pytest.raises(ConsistencyError):
            place_team(bracket, {'match': 'U1-M1', 'slot': 0}, "t4")

    def test_missing_target(self):
        bracket = build_bracket(ranked_teams(4), 4)
        with pytest.raises(ConsistencyError):
            place_team(bracket, {'match': 'L9-M1', 'slot': 0}, "t4")

    def test_invalid_slot(self):
        bracket = build_bracket(ranked_teams(4), 4)
        with pytest.raises(ConsistencyError):
            place_team(bracket, {'match': 'GF', 'slot': 2}, "t4")


class TestSingleElimination:
    def test_rounds_appended_lazily(self):
        bracket = build_bracket(ranked_teams(4), 4, TournamentFormat.SINGLE_ELIMINATION)
        assert len(bracket['upper_bracket']) == 1
        bracket = record_match_result(bracket, "R1-M1", 2, 0)
        assert len(bracket['upper_bracket']) == 1
        bracket = record_match_result(bracket, "R1-M2", 2, 0)
        final = bracket['upper_bracket'][1]
        assert final['name'] == "Final"
        assert (final['matches'][0]['team1'], final['matches'][0]['team2']) == ("t1", "t2")

    def test_final_completes_tournament(self):
        bracket = build_bracket(ranked_teams(2), 2, "single-elimination")
        bracket = record_match_result(bracket, "R1-M1", 0, 1)
        assert bracket['status'] == "completed"
        assert bracket['champion'] == "t2"
        assert bracket['runner_up'] == "t1"
        assert bracket['eliminated'] == ["t1"]

    def test_odd_field(self):
        bracket = build_bracket(ranked_teams(5), 5, TournamentFormat.SINGLE_ELIMINATION)
        assert match(bracket, "R1-M3")['status'] == "bye-completed"
        bracket = play_out(bracket)
        assert bracket['champion'] == "t1"
        assert len(bracket['eliminated']) == 4

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            build_bracket(ranked_teams(4), 4, "round-robin")


@pytest.mark.slow
class TestFullBracketWalks:
    """Every bracket size runs to completion with consistent losses."""

    @pytest.mark.parametrize("upset", [False, True])
    @pytest.mark.parametrize("size", range(2, 11))
    def test_double_elimination(self, size, upset):
        bracket = play_out(build_bracket(ranked_teams(size), size), upset=upset)
        assert bracket['status'] == "completed"
        assert bracket['champion'] is not None

        losses = {}
        upper_losses = {}
        for r in bracket['upper_bracket'] + bracket['lower_bracket'] + [bracket['finals']]:
            for m in r['matches']:
                if m['status'] != MatchStatus.COMPLETED.value:
                    continue
                losses[m['loser']] = losses.get(m['loser'], 0) + 1
                if r['bracket'] == 'upper':
                    upper_losses[m['loser']] = upper_losses.get(m['loser'], 0) + 1

        assert all(count <= 2 for count in losses.values())
        assert bracket['champion'] not in bracket['eliminated']
        assert sorted(bracket['eliminated'] + [bracket['champion']]) == sorted(f"t{i}" for i in range(1, size + 1))
        # Each team enters the lower bracket at most once: by starting there or by one upper loss
        upper_count = bracket['metadata']['upper_bracket_teams']
        for team in bracket['teams']:
            starts_lower = 1 if team['seed'] > upper_count else 0
            assert starts_lower + upper_losses.get(team['id'], 0) <= 1

    @pytest.mark.parametrize("size", range(2, 11))
    def test_single_elimination(self, size):
        bracket = play_out(build_bracket(ranked_teams(size), size, TournamentFormat.SINGLE_ELIMINATION))
        assert bracket['champion'] == "t1"
        assert len(set(bracket['eliminated'])) == size - 1


class TestSummary:
    def test_counts(self):
        bracket = build_bracket(ranked_teams(3), 3)
        summary = get_bracket_summary(bracket)
        assert summary['matches']['bye-completed'] == 1
        assert summary['playable'] == ["U1-M2"]
