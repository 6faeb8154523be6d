from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from insight.cli import app
from insight.main import VERSION

runner = CliRunner()

CONFIG = """\
apiVersion: v1
kind: insight
metadata:
  name: insight
spec:
  codeConfig:
    kernelLinter: /nonexistent/checkpatch.pl
  nodeConfig:
    duration: 10s
"""


def _config(tmp_path: Path, text: str = CONFIG) -> Path:
    path = tmp_path / "config.yml"
    path.write_text(text)
    return path


def test_version_does_not_need_config() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert VERSION in result.stdout


def test_config_file_is_required() -> None:
    result = runner.invoke(app, [])
    assert result.exit_code != 0


def test_missing_config_file_fails(tmp_path: Path) -> None:
    result = runner.invoke(app, ["--config-file", str(tmp_path / "absent.yml")])
    assert result.exit_code == 1


def test_bad_duration_in_config_fails(tmp_path: Path) -> None:
    path = _config(tmp_path, "spec:\n  nodeConfig:\n    duration: soon\n")
    result = runner.invoke(app, ["--config-file", str(path)])
    assert result.exit_code == 1


def test_bad_log_level_fails(tmp_path: Path) -> None:
    result = runner.invoke(app, ["--config-file", str(_config(tmp_path)), "--log-level", "LOUD"])
    assert result.exit_code == 2


def test_trigger_file_runs_once(tmp_path: Path) -> None:
    trigger = tmp_path / "trigger.json"
    trigger.write_text(json.dumps({"codeTrigger": {}}))

    result = runner.invoke(
        app,
        ["--config-file", str(_config(tmp_path)), "--trigger-file", str(trigger), "--log-level", "ERROR"],
    )

    assert result.exit_code == 0
    response = json.loads(result.stdout.strip().splitlines()[-1])
    assert response["codeInfo"]["vote"] == ""
    assert "error" not in response


def test_invalid_trigger_file_fails(tmp_path: Path) -> None:
    trigger = tmp_path / "trigger.json"
    trigger.write_text(json.dumps({"nodeTrigger": {"sshConfig": {"host": "h", "port": 0}}}))

    result = runner.invoke(app, ["--config-file", str(_config(tmp_path)), "--trigger-file", str(trigger)])

    assert result.exit_code == 1
