import json
import os
import subprocess
import sys
from pathlib import Path


def _run(*args):
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(Path("src").resolve()), env.get("PYTHONPATH")]))
    return subprocess.run(
        [sys.executable, "scripts/plan_survey.py", *args], env=env, capture_output=True, text=True, check=False
    )


def test_cli_writes_waypoints(tmp_path):
    out = tmp_path / "wps.json"
    res = _run("--boundary", "examples/boundaries/square.json", "--pattern", "perimeter", "--out", str(out))
    assert res.returncode == 0, res.stderr
    assert "Pattern: perimeter; waypoints: 8" in res.stdout
    wps = json.loads(out.read_text())
    assert wps[0]["action"] == "takeoff" and wps[-1]["action"] == "land"


def test_cli_rejects_bad_parameters():
    res = _run("--boundary", "examples/boundaries/square.json", "--altitude", "0")
    assert res.returncode == 2
    assert "altitude" in res.stderr
