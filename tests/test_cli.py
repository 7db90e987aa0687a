import pathlib

import pytest
import typer
from typer.testing import CliRunner

from agentswarm.cli import _parse_inputs, app

EXAMPLE = pathlib.Path(__file__).resolve().parents[1] / "examples" / "configs" / "software_team.yaml"

runner = CliRunner()


def test_inspect_lists_agents_and_workflows():
    result = runner.invoke(app, ["inspect", str(EXAMPLE)])

    assert result.exit_code == 0, result.output
    assert "software-team" in result.output
    assert "local (default)" in result.output
    assert "bugfix [development]" in result.output
    assert "fix -> verify" in result.output


def test_invalid_config_exits_with_error(tmp_path):
    config = tmp_path / "broken.yaml"
    config.write_text("name: broken\n")

    result = runner.invoke(app, ["run", str(config)])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_run_requires_tasks(tmp_path):
    config = tmp_path / "idle.yaml"
    config.write_text("agents: {dev: {type: DEVELOPER}}\n")

    result = runner.invoke(app, ["run", str(config)])

    assert result.exit_code == 1
    assert "no tasks" in result.output


def test_parse_inputs():
    assert _parse_inputs(["feature=login", "note=a=b"]) == {"feature": "login", "note": "a=b"}
    with pytest.raises(typer.BadParameter):
        _parse_inputs(["missing-separator"])
