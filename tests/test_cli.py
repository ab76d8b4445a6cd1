"""Smoke tests for the command-line interface."""

import csv
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from kendotree.cli import cli
from kendotree.storage import DatabaseManager


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "kendotree.sqlite")


def invoke(runner, db_path, *args):
    return runner.invoke(cli, ["--db", db_path, *args])


def write_competitors(tmp_path, count):
    path = tmp_path / "competitors.csv"
    lines = ["first_name,last_name,club"]
    lines += [f"Fighter{i},Last{i},{i % 3}" for i in range(1, count + 1)]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return str(path)


def write_settings(tmp_path, text):
    path = tmp_path / "settings.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_full_flow(runner, db_path, tmp_path):
    """Create, import, configure, generate, show and export."""
    result = invoke(runner, db_path, "create-championship", "--name", "Men Individual")
    assert result.exit_code == 0, result.output
    assert "id 1" in result.output

    result = invoke(runner, db_path, "import-participants", "--championship", "1",
                    "--csv", write_competitors(tmp_path, 10))
    assert result.exit_code == 0, result.output
    assert "Imported 10 participants" in result.output

    settings = write_settings(tmp_path, "tree_type: direct_elimination\ngroup_by: club\n")
    result = invoke(runner, db_path, "configure", "--championship", "1", "--config", settings)
    assert result.exit_code == 0, result.output
    assert "Tree type: direct_elimination" in result.output
    assert "Group by: club" in result.output

    result = invoke(runner, db_path, "generate-tree", "--championship", "1", "--seed", "5")
    assert result.exit_code == 0, result.output
    assert "Created 8 rounds in 1 area(s)" in result.output

    result = invoke(runner, db_path, "show-rounds", "--championship", "1")
    assert result.exit_code == 0, result.output
    assert "Area 1" in result.output
    assert result.output.count("BYE") == 6

    out = tmp_path / "rounds.csv"
    result = invoke(runner, db_path, "export-rounds", "--championship", "1", "--out", str(out))
    assert result.exit_code == 0, result.output
    with open(out, encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 10
    assert {row["Member_Name"] for row in rows} == {f"Fighter{i} Last{i}" for i in range(1, 11)}


def test_not_enough_fighters(runner, db_path, tmp_path):
    invoke(runner, db_path, "create-championship", "--name", "Tiny")
    invoke(runner, db_path, "import-participants", "--championship", "1",
           "--csv", write_competitors(tmp_path, 1))

    result = invoke(runner, db_path, "generate-tree", "--championship", "1")

    assert result.exit_code != 0
    assert "[ERROR] Not enough fighters" in result.output


def test_invalid_settings(runner, db_path, tmp_path):
    invoke(runner, db_path, "create-championship", "--name", "Open")
    settings = write_settings(tmp_path, "fighting_areas: 3\n")

    result = invoke(runner, db_path, "configure", "--championship", "1", "--config", settings)

    assert result.exit_code != 0
    assert "Configuration Error" in result.output


def test_unknown_championship(runner, db_path):
    result = invoke(runner, db_path, "generate-tree", "--championship", "42")

    assert result.exit_code != 0
    assert "Championship 42 not found" in result.output


def test_show_rounds_before_generation(runner, db_path):
    invoke(runner, db_path, "create-championship", "--name", "Open")

    result = invoke(runner, db_path, "show-rounds", "--championship", "1")

    assert result.exit_code == 0
    assert "No rounds yet" in result.output


def test_team_championship(runner, db_path, tmp_path):
    invoke(runner, db_path, "create-championship", "--name", "Teams", "--team")
    teams = tmp_path / "teams.csv"
    teams.write_text("name\nKyoto\nOsaka\nTokyo\nNara\n", encoding="utf-8")

    result = invoke(runner, db_path, "import-participants", "--championship", "1", "--csv", str(teams))
    assert result.exit_code == 0, result.output

    result = invoke(runner, db_path, "generate-tree", "--championship", "1")
    assert result.exit_code == 0, result.output
    assert "Created 1 rounds" in result.output

    result = invoke(runner, db_path, "show-rounds", "--championship", "1")
    assert "Kyoto" in result.output


def test_seed_from_settings_file_gives_same_draw(runner, db_path, tmp_path):
    """random_seed in the settings file is saved and reused by generate-tree."""
    invoke(runner, db_path, "create-championship", "--name", "Open")
    invoke(runner, db_path, "import-participants", "--championship", "1",
           "--csv", write_competitors(tmp_path, 16))
    settings = write_settings(tmp_path, "tree_type: direct_elimination\nrandom_seed: 7\n")
    result = invoke(runner, db_path, "configure", "--championship", "1", "--config", settings)
    assert result.exit_code == 0, result.output
    assert "Random seed: 7" in result.output

    draws = []
    for _ in range(2):
        result = invoke(runner, db_path, "generate-tree", "--championship", "1")
        assert result.exit_code == 0, result.output
        result = invoke(runner, db_path, "show-rounds", "--championship", "1")
        assert result.exit_code == 0, result.output
        draws.append(result.output)

    assert draws[0] == draws[1]
    assert draws[0].count(" vs ") == 8


def test_session_is_closed_after_command(runner, db_path, monkeypatch):
    opened = []
    original_get_session = DatabaseManager.get_session

    def tracking_get_session(self):
        session = original_get_session(self)
        session.close = MagicMock(wraps=session.close)
        opened.append(session)
        return session

    monkeypatch.setattr(DatabaseManager, "get_session", tracking_get_session)

    result = invoke(runner, db_path, "create-championship", "--name", "Open")

    assert result.exit_code == 0, result.output
    assert len(opened) == 1
    opened[0].close.assert_called_once()
