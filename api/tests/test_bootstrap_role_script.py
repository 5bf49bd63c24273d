from __future__ import annotations

import subprocess
import sys
from pathlib import Path


SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "bootstrap_role.py"


def _run_script(*args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, str(SCRIPT_PATH), *args],
        check=check,
        capture_output=True,
        text=True,
    )


def test_bootstrap_script_emits_sql_for_admin() -> None:
    output = _run_script("--email", "admin@example.org").stdout

    assert "update users\nset role = 'admin'\nwhere email = 'admin@example.org';" in output
    assert "|| jsonb_build_object('role', 'admin')" in output


def test_bootstrap_script_includes_owned_profile() -> None:
    output = _run_script("--email", "hr@st-mary.org", "--role", "hospital", "--profile-id", "12").stdout

    assert "jsonb_build_object('role', 'hospital', 'hospital_profile_id', 12)" in output
    assert "where email = 'hr@st-mary.org';" in output


def test_bootstrap_script_escapes_quotes() -> None:
    output = _run_script("--email", "o'neil@example.org", "--role", "doctor", "--profile-id", "3").stdout

    assert "where email = 'o''neil@example.org';" in output


def test_bootstrap_script_requires_profile_for_doctor() -> None:
    completed = _run_script("--email", "doc@example.org", "--role", "doctor", check=False)

    assert completed.returncode == 2
    assert "--profile-id is required for role doctor" in completed.stderr
