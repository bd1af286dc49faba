"""
Flask JSON API for the league: teams, round-robin schedule, results,
standings and the playoff bracket.
"""
import os
from flask import Flask, request, jsonify
from core.errors import TournamentError, InputError, PersistenceError
from core.models import FixtureResult, TournamentFormat, TournamentStatus
from core import progression
from core.round_robin import (
    generate_round_robin,
    find_fixture,
    get_total_weeks,
    get_week_fixtures,
    get_available_weeks,
    get_week_statistics,
    get_schedule_overview,
)
from core.standings import (
    validate_score,
    correction_delta,
    is_zero_delta,
    rank_teams,
    calculate_standings,
    stats_from_standings,
)
from storage import (
    YamlStore,
    TEAMS_FILE,
    RESULTS_FILE,
    TOURNAMENT_FILE,
    get_default_settings,
    points_table,
)

app = Flask(__name__)


def _get_or_create_secret_key() -> bytes:
    """Get SECRET_KEY from env, or generate and persist to file."""
    env_key = os.environ.get('SECRET_KEY')
    if env_key:
        return env_key.encode() if isinstance(env_key, str) else env_key
    key_file = os.path.join(DATA_DIR, '.secret_key')
    if os.path.exists(key_file):
        with open(key_file, 'rb') as f:
            return f.read()
    key = os.urandom(24)
    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    with open(key_file, 'wb') as f:
        f.write(key)
    return key


BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('LEAGUE_DATA_DIR', os.path.join(BASE_DIR, 'data'))

app.secret_key = _get_or_create_secret_key()

# Fixture key parts that mean an id was never filled in
INVALID_KEY_PARTS = {'', 'None', 'null', 'undefined'}

EDITABLE_SETTINGS = set(get_default_settings().keys())


def get_store() -> YamlStore:
    """Store for the current data directory."""
    store = YamlStore(DATA_DIR)
    timeout = store.load_settings().get('lock_timeout_seconds')
    if timeout:
        store.lock.timeout = timeout
    return store


@app.errorhandler(TournamentError)
def handle_tournament_error(e):
    if isinstance(e, PersistenceError):
        app.logger.error(f'{request.method} {request.path} failed: {e.message}')
    else:
        app.logger.warning(f'{request.method} {request.path} rejected: {e.message}')
    return jsonify({'error': e.message}), e.status_code


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InputError('Expected a JSON object body')
    return data


# Services

def generate_schedule(teams):
    """Double round-robin for the given teams; at least 2 are required."""
    if len(teams) < 2:
        raise InputError('At least 2 teams are needed to generate a schedule')
    return generate_round_robin(teams)


def validate_fixture_key(fixture_key):
    """Reject keys that are malformed or were built from a missing id."""
    if not isinstance(fixture_key, str) or not fixture_key.strip():
        raise InputError('Missing fixture key')
    parts = fixture_key.split('-')
    if (len(parts) < 4
            or any(part in INVALID_KEY_PARTS for part in parts)
            or not parts[0].isdigit() or not parts[1].isdigit()):
        raise InputError(f'Invalid fixture key: {fixture_key}')
    return fixture_key


def record_result(fixture_key, home_score, away_score, store=None):
    """
    Save a fixture result and update both teams' statistics.

    The previous stored result for the fixture is rolled back first, so
    resubmitting the same scores changes nothing. Teams and results are
    restored together if any write fails.
    """
    validate_fixture_key(fixture_key)
    home_score = validate_score(home_score, 'home score')
    away_score = validate_score(away_score, 'away score')
    store = store or get_store()
    points = points_table(store.load_settings())

    with store.locked():
        fixture = find_fixture(generate_schedule(store.list_teams()), fixture_key)
        if fixture is None:
            raise InputError(f'Unknown fixture: {fixture_key}')

        previous = store.load_fixture_results().get(fixture_key)
        result = FixtureResult(fixture_key, home_score, away_score)
        home_delta, away_delta = correction_delta(result, previous, points)
        changed = previous != result

        if changed:
            snap = store.snapshot(TEAMS_FILE, RESULTS_FILE)
            try:
                store.upsert_fixture_result(result)
                if not is_zero_delta(home_delta):
                    store.apply_stats_delta(fixture.home.id, home_delta)
                if not is_zero_delta(away_delta):
                    store.apply_stats_delta(fixture.away.id, away_delta)
            except PersistenceError:
                store.restore(snap)
                raise

    if changed:
        app.logger.info(f'Result {fixture_key}: {fixture.home.name} {home_score}-{away_score} {fixture.away.name}')
    return {
        'fixture': fixture.to_dict(),
        'result': result.to_dict(),
        'changed': changed,
    }


def recalculate_team_stats(store=None):
    """Rebuild every team's statistics from the stored results."""
    store = store or get_store()
    points = points_table(store.load_settings())
    with store.locked():
        teams = store.list_teams()
        fixtures = generate_round_robin(teams)
        table = calculate_standings(teams, fixtures, store.load_fixture_results(), points)
        stats = stats_from_standings(table)
        for team in teams:
            for key, value in stats[team.id].items():
                setattr(team, key, value)
        store.save_teams(teams)
    app.logger.info(f'Recalculated statistics for {len(teams)} teams')
    return table


def _save_tournament(store, tournament):
    """Store a bracket, putting tournament.yaml back as it was if the write fails."""
    snap = store.snapshot(TOURNAMENT_FILE)
    try:
        store.save_tournament(tournament)
    except PersistenceError:
        store.restore(snap)
        raise


def reset_results(store=None):
    """
    Discard every stored league result and zero the team statistics.

    Stored results go stale once the team list changes, since fixture keys
    follow the schedule.
    """
    store = store or get_store()
    with store.locked():
        teams = store.list_teams()
        snap = store.snapshot(TEAMS_FILE, RESULTS_FILE)
        try:
            store.clear_fixture_results()
            for team in teams:
                team.wins = team.losses = team.draws = team.points = 0
            store.save_teams(teams)
        except PersistenceError:
            store.restore(snap)
            raise
    app.logger.info(f'Cleared league results for {len(teams)} teams')


def build_bracket(teams, size, tournament_format=None, store=None):
    """Seed a new playoff bracket from the teams and store it as the active one."""
    store = store or get_store()
    settings = store.load_settings()
    try:
        tournament_format = TournamentFormat(tournament_format or settings['bracket_format'])
    except ValueError:
        raise InputError(f'Unknown bracket format: {tournament_format}')
    if size is None:
        size = min(settings['default_playoff_size'], len(teams))

    tournament = progression.build_bracket(teams, size, tournament_format)
    with store.locked():
        _save_tournament(store, tournament)
    app.logger.info(f'Bracket {tournament["id"]} built with {size} teams ({tournament_format.value})')
    return tournament


def record_match_result(match_id, score1, score2, store=None):
    """Apply a knockout result to the active bracket."""
    store = store or get_store()
    with store.locked():
        tournament = store.load_tournament()
        if tournament is None:
            raise InputError('No bracket has been built')
        updated = progression.record_match_result(tournament, match_id, score1, score2)
        _save_tournament(store, updated)
    if updated['status'] == TournamentStatus.COMPLETED.value:
        app.logger.info(f'Bracket {updated["id"]} completed, champion: {updated["champion"]}')
    return updated


def reset_bracket(store=None):
    """Discard the active bracket."""
    store = store or get_store()
    return store.delete_tournament()


def _fixture_with_result(fixture, results):
    data = fixture.to_dict()
    data['home_name'] = fixture.home.name
    data['away_name'] = fixture.away.name
    result = results.get(fixture.key)
    data['result'] = result.to_dict() if result else None
    return data


def _bracket_response(tournament):
    if tournament is None:
        return {'tournament': None, 'summary': None}
    return {'tournament': tournament, 'summary': progression.get_bracket_summary(tournament)}


# Teams

@app.route('/api/teams', methods=['GET'])
def api_list_teams():
    """Teams in ranking order."""
    teams = rank_teams(get_store().list_teams())
    return jsonify({'teams': [team.to_dict() for team in teams]})


@app.route('/api/teams', methods=['POST'])
def api_create_team():
    data = _json_body()
    players = data.get('players') or []
    if not isinstance(players, list):
        raise InputError('Players must be a list of names')
    team = get_store().create_team(data.get('name'), [str(p) for p in players])
    return jsonify({'success': True, 'team': team.to_dict()}), 201


@app.route('/api/teams/<team_id>', methods=['GET'])
def api_get_team(team_id):
    team = get_store().get_team(team_id)
    if team is None:
        raise InputError(f'Unknown team: {team_id}')
    return jsonify({'team': team.to_dict()})


@app.route('/api/teams/<team_id>', methods=['DELETE'])
def api_delete_team(team_id):
    get_store().delete_team(team_id)
    return jsonify({'success': True})


# Schedule and results

@app.route('/api/schedule', methods=['GET'])
def api_schedule():
    store = get_store()
    teams = store.list_teams()
    fixtures = generate_schedule(teams)
    results = store.load_fixture_results()
    return jsonify({
        'fixtures': [_fixture_with_result(fx, results) for fx in fixtures],
        'overview': get_schedule_overview(fixtures, results, teams),
    })


@app.route('/api/schedule/weeks/<int:week>', methods=['GET'])
def api_week(week):
    store = get_store()
    fixtures = generate_schedule(store.list_teams())
    if week < 1 or week > get_total_weeks(fixtures):
        raise InputError(f'Week {week} is outside the schedule')
    results = store.load_fixture_results()
    return jsonify({
        'week': week,
        'available': week in get_available_weeks(fixtures, results),
        'fixtures': [_fixture_with_result(fx, results) for fx in get_week_fixtures(fixtures, week)],
        'statistics': get_week_statistics(fixtures, results, week),
    })


@app.route('/api/results', methods=['POST'])
def api_record_result():
    data = _json_body()
    outcome = record_result(data.get('fixture_key'), data.get('home_score'), data.get('away_score'))
    return jsonify({'success': True, **outcome})


@app.route('/api/results/reset', methods=['POST'])
def api_reset_results():
    reset_results()
    return jsonify({'success': True})


@app.route('/api/standings', methods=['GET'])
def api_standings():
    store = get_store()
    teams = store.list_teams()
    fixtures = generate_round_robin(teams)
    table = calculate_standings(teams, fixtures, store.load_fixture_results(),
                                points_table(store.load_settings()))
    return jsonify({'standings': table})


@app.route('/api/standings/recalculate', methods=['POST'])
def api_recalculate_standings():
    table = recalculate_team_stats()
    return jsonify({'success': True, 'standings': table})


# Bracket

@app.route('/api/bracket', methods=['GET'])
def api_bracket():
    return jsonify(_bracket_response(get_store().load_tournament()))


@app.route('/api/bracket', methods=['POST'])
def api_build_bracket():
    data = request.get_json(silent=True) or {}
    store = get_store()
    tournament = build_bracket(store.list_teams(), data.get('size'), data.get('format'), store=store)
    return jsonify({'success': True, **_bracket_response(tournament)}), 201


@app.route('/api/bracket/matches/<match_id>', methods=['POST'])
def api_record_match_result(match_id):
    data = _json_body()
    tournament = record_match_result(match_id, data.get('score1'), data.get('score2'))
    return jsonify({'success': True, **_bracket_response(tournament)})


@app.route('/api/bracket/reset', methods=['POST'])
def api_reset_bracket():
    removed = reset_bracket()
    return jsonify({'success': True, 'removed': removed})


# Settings

@app.route('/api/settings', methods=['GET'])
def api_settings():
    return jsonify({'settings': get_store().load_settings()})


@app.route('/api/settings', methods=['POST'])
def api_update_settings():
    data = _json_body()
    unknown = set(data) - EDITABLE_SETTINGS
    if unknown:
        raise InputError(f'Unknown settings: {", ".join(sorted(unknown))}')
    store = get_store()
    with store.locked():
        settings = {**store.load_settings(), **data}
        store.save_settings(settings)
    return jsonify({'success': True, 'settings': settings})


if __name__ == '__main__':
    app.run(debug=True, port=5000)
