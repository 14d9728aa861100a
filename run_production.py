#!/usr/bin/env python3
"""
Production runner for Bank Ledger: gunicorn with Uvicorn workers.

Meant to be the ExecStart of a systemd unit. Settings live in
gunicorn_conf.py and the environment; use run.py for development.
"""
import os
import shutil
import sys
from pathlib import Path

project_root = Path(__file__).parent
venv_gunicorn = project_root / ".venv" / "bin" / "gunicorn"


def find_gunicorn():
    if venv_gunicorn.exists():
        return str(venv_gunicorn)
    return shutil.which("gunicorn")


def run_server():
    """Replace this process with gunicorn"""
    gunicorn_bin = find_gunicorn()
    if gunicorn_bin is None:
        print("gunicorn not found. Install the project first: pip install -e .")
        return 1

    print("Starting Bank Ledger API (production)")
    print(f"Bind: {os.getenv('HOST', '0.0.0.0')}:{os.getenv('PORT', '8000')}")
    print(f"Workers: {os.getenv('WEB_CONCURRENCY', '2')}")
    print("Config: gunicorn_conf.py")

    os.chdir(project_root)
    # execv so systemd signals reach gunicorn directly
    os.execv(gunicorn_bin, [gunicorn_bin, "-c", "gunicorn_conf.py", "bank_ledger.main:app"])


if __name__ == "__main__":
    sys.exit(run_server() or 0)
