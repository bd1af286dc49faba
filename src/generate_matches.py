import yaml
import os
from core.models import Team
from core.round_robin import generate_round_robin, get_total_weeks, get_week_fixtures


def load_teams(file_path):
    """
    Load teams from a YAML file.

    Accepts the store format ({'teams': [{'id', 'name', ...}]}) or a plain
    list of team names, in which case names double as ids.
    """
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file)
    if not data:
        return []
    entries = data.get('teams', []) if isinstance(data, dict) else data
    teams = []
    for entry in entries:
        if isinstance(entry, dict):
            teams.append(Team.from_dict(entry))
        else:
            teams.append(Team(id=str(entry), name=str(entry)))
    return teams


def format_schedule(fixtures):
    """Schedule as text, one block per week."""
    lines = []
    for week in range(1, get_total_weeks(fixtures) + 1):
        if lines:
            lines.append('')
        lines.append(f"# Week {week}")
        for fixture in get_week_fixtures(fixtures, week):
            lines.append(f"{fixture.home.name} vs {fixture.away.name}")
    return '\n'.join(lines)


def main():
    import sys

    script_dir = os.path.dirname(__file__)
    base_dir = os.path.dirname(script_dir)

    # Use command line argument if provided, otherwise use default path
    teams_file = sys.argv[1] if len(sys.argv) > 1 else os.path.join(base_dir, 'data', 'teams.yaml')

    teams = load_teams(teams_file)
    if len(teams) < 2:
        print(f"Warning: {teams_file} has fewer than 2 teams ({len(teams)} found). Nothing to schedule.")
        return

    fixtures = generate_round_robin(teams)
    print(format_schedule(fixtures))


if __name__ == '__main__':
    main()
