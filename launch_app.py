from __future__ import annotations

import hashlib
import os
import subprocess
import sys
import venv
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent
VENV_DIR = PROJECT_ROOT / ".venv"
PROJECT_FILE = PROJECT_ROOT / "pyproject.toml"
REQUIREMENTS_MARKER = VENV_DIR / ".requirements.applied"
APP_MODULE = "api:app"
HOST = os.getenv("ROTA_HOST", "127.0.0.1")
PORT = os.getenv("ROTA_PORT", "8000")


def venv_python() -> Path:
    if os.name == "nt":
        return VENV_DIR / "Scripts" / "python.exe"
    return VENV_DIR / "bin" / "python"


def ensure_virtualenv() -> None:
    if VENV_DIR.exists() and venv_python().exists():
        return

    print(f"[launcher] Creating virtual environment at {VENV_DIR}...")
    builder = venv.EnvBuilder(with_pip=True, upgrade=False, clear=False)
    builder.create(VENV_DIR)


def current_requirements_signature() -> str:
    if not PROJECT_FILE.exists():
        raise FileNotFoundError(f"Project file not found: {PROJECT_FILE}")
    content = PROJECT_FILE.read_bytes()
    return hashlib.sha256(content).hexdigest()


def ensure_requirements() -> None:
    python_exec = venv_python()
    signature = current_requirements_signature()

    if REQUIREMENTS_MARKER.exists() and REQUIREMENTS_MARKER.read_text().strip() == signature:
        print("[launcher] Dependencies satisfied.")
        return

    print("[launcher] Making sure pip is up to date...")
    subprocess.check_call(
        [
            str(python_exec),
            "-m",
            "pip",
            "install",
            "--upgrade",
            "pip",
        ]
    )

    print(f"[launcher] Installing project from {PROJECT_FILE}...")
    subprocess.check_call(
        [
            str(python_exec),
            "-m",
            "pip",
            "install",
            "-e",
            str(PROJECT_ROOT),
        ]
    )

    REQUIREMENTS_MARKER.write_text(signature)


def seed_if_requested() -> None:
    if "--seed" not in sys.argv[1:]:
        return
    print("[launcher] Seeding sample location, staff and template...")
    subprocess.check_call([str(venv_python()), str(PROJECT_ROOT / "app" / "scripts" / "seed_rota.py")])


def launch_app() -> int:
    ensure_virtualenv()
    ensure_requirements()
    seed_if_requested()

    python_exec = venv_python()
    print(f"[launcher] Starting Rota Assistant API on http://{HOST}:{PORT} ...")
    return subprocess.call(
        [
            str(python_exec),
            "-m",
            "uvicorn",
            APP_MODULE,
            "--app-dir",
            str(PROJECT_ROOT / "app"),
            "--host",
            HOST,
            "--port",
            PORT,
        ]
    )


if __name__ == "__main__":
    try:
        exit_code = launch_app()
    except subprocess.CalledProcessError as exc:
        print(f"[launcher] Command failed with exit code {exc.returncode}", file=sys.stderr)
        sys.exit(exc.returncode)
    except Exception as exc:
        print(f"[launcher] {exc}", file=sys.stderr)
        sys.exit(1)
    else:
        sys.exit(exit_code)
