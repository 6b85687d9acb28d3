import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def _escort(*args):
    return subprocess.run(
        [sys.executable, "-m", "escort.cli", "--backend", "memory", *args],
        capture_output=True,
        text=True,
        cwd=ROOT,
    )


def test_check_headers_on_seed_workbook():
    r = _escort("check-headers")
    assert r.returncode == 0, r.stdout + "\n" + r.stderr
    assert "sheets_with_problems=0" in r.stdout


def test_generate_ids_dry_run_fills_blank_row():
    r = _escort("generate-ids", "--dry-run")
    assert r.returncode == 0, r.stdout + "\n" + r.stderr
    assert "generated=1" in r.stdout


def test_notify_dry_run_lists_targets():
    r = _escort("notify", "--filter", "all", "--dry-run")
    assert r.returncode == 0, r.stdout + "\n" + r.stderr
    assert "dry_run=True" in r.stdout


def test_gsheets_backend_without_env_fails_cleanly():
    env = {k: v for k, v in os.environ.items() if not k.startswith(("GOOGLE_", "ESCORT_"))}
    r = subprocess.run(
        [sys.executable, "-m", "escort.cli", "--backend", "gsheets", "check-headers"],
        capture_output=True,
        text=True,
        cwd=ROOT,
        env=env,
    )
    assert r.returncode == 1
    assert "Missing env var" in r.stdout
