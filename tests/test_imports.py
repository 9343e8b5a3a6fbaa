import os
import subprocess
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.mark.parametrize(
    "module",
    [
        "exam_api.app",
        "exam_api.models",
        "exam_api.models.db",
        "exam_api.services.persistence",
        "exam_api.services.session_manager",
        "exam_api.services.session_flows",
        "exam_api.routes.sessions",
    ],
)
def test_module_imports_in_fresh_interpreter(module: str, tmp_path: Path) -> None:
    result = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        cwd=PROJECT_ROOT,
        env={**os.environ, "DB_DIR": str(tmp_path)},
        capture_output=True,
        text=True,
        timeout=60,
    )
    assert result.returncode == 0, result.stderr


def test_models_do_not_load_services(tmp_path: Path) -> None:
    script = (
        "import sys, exam_api.models, exam_api.models.db; "
        "loaded = [m for m in sys.modules if m.startswith('exam_api.services')]; "
        "assert not loaded, loaded"
    )
    result = subprocess.run(
        [sys.executable, "-c", script],
        cwd=PROJECT_ROOT,
        env={**os.environ, "DB_DIR": str(tmp_path)},
        capture_output=True,
        text=True,
        timeout=60,
    )
    assert result.returncode == 0, result.stderr
