"""
Unit tests for the schedule printing script.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from core.round_robin import generate_round_robin
from generate_matches import load_teams, format_schedule, main


class TestLoadTeams:
    """Tests for reading team files."""

    def test_plain_name_list(self, tmp_path):
        path = tmp_path / "teams.yaml"
        path.write_text(yaml.dump(["Lions", "Tigers"]))
        teams = load_teams(str(path))
        assert [(t.id, t.name) for t in teams] == [("Lions", "Lions"), ("Tigers", "Tigers")]

    def test_store_format(self, tmp_path):
        path = tmp_path / "teams.yaml"
        path.write_text(yaml.dump({'teams': [
            {'id': 'a1', 'name': 'Lions', 'players': ['Ana'], 'wins': 2},
            {'id': 'b2', 'name': 'Tigers'},
        ]}))
        teams = load_teams(str(path))
        assert [t.id for t in teams] == ['a1', 'b2']
        assert teams[0].wins == 2

    def test_empty_file(self, tmp_path):
        path = tmp_path / "teams.yaml"
        path.write_text("")
        assert load_teams(str(path)) == []


class TestFormatSchedule:
    def test_weeks_in_blocks(self):
        from conftest import make_teams
        text = format_schedule(generate_round_robin(make_teams(3)))
        blocks = text.split("\n\n")
        assert len(blocks) == 6
        assert blocks[0].splitlines()[0] == "# Week 1"
        assert all(len(block.splitlines()) == 2 for block in blocks)

    def test_empty(self):
        assert format_schedule([]) == ""


class TestMain:
    def test_prints_schedule(self, tmp_path, monkeypatch, capsys):
        path = tmp_path / "teams.yaml"
        path.write_text(yaml.dump(["Lions", "Tigers"]))
        monkeypatch.setattr(sys, 'argv', ['generate_matches.py', str(path)])
        main()
        out = capsys.readouterr().out
        assert "# Week 1\nLions vs Tigers" in out
        assert "# Week 2\nTigers vs Lions" in out

    def test_too_few_teams(self, tmp_path, monkeypatch, capsys):
        path = tmp_path / "teams.yaml"
        path.write_text(yaml.dump(["Lions"]))
        monkeypatch.setattr(sys, 'argv', ['generate_matches.py', str(path)])
        main()
        assert "fewer than 2 teams" in capsys.readouterr().out
