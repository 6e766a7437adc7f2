from typer.testing import CliRunner

from creator_lens.cli import app

runner = CliRunner()


def test_event_result_and_persona(tmp_path):
    db = str(tmp_path / "cli.db")
    result = runner.invoke(app, ["--db", db, "log-event", "cli-u1", "save", "--tone", "educational"])
    assert result.exit_code == 0, result.output
    assert "persona v1 updated" in result.output

    result = runner.invoke(
        app,
        ["--db", db, "add-result", "cli-u1", "-p", "tiktok", "--views", "200", "--likes", "30", "--tone", "funny", "--id", "r1"],
    )
    assert result.exit_code == 0, result.output
    assert "engagement 15.0%" in result.output
    assert "1 results" in result.output

    result = runner.invoke(app, ["--db", db, "persona", "cli-u1", "--recalculate"])
    assert result.exit_code == 0, result.output
    assert "Creator Persona" in result.output

    result = runner.invoke(app, ["--db", db, "patterns", "cli-u1"])
    assert result.exit_code == 0, result.output


def test_empty_states(tmp_path):
    db = str(tmp_path / "cli.db")
    result = runner.invoke(app, ["--db", db, "persona", "cli-nobody"])
    assert result.exit_code == 0
    assert "No persona yet" in result.output

    result = runner.invoke(app, ["--db", db, "insights", "cli-nobody", "--start", "2024-01-01"])
    assert result.exit_code == 0
    assert "Not enough results" in result.output


def test_invalid_enum_is_rejected(tmp_path):
    result = runner.invoke(app, ["--db", str(tmp_path / "cli.db"), "log-event", "cli-u2", "like"])
    assert result.exit_code != 0
