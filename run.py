#!/usr/bin/env python3
"""
Development server for Bank Ledger: uvicorn with --reload.

HOST and PORT override the bind address. Uses the project's .venv when
present, otherwise the current interpreter.
"""
import os
import subprocess
import sys
from pathlib import Path

project_root = Path(__file__).parent
venv_python = project_root / ".venv" / "bin" / "python"


def run_server():
    """Run the API under uvicorn with auto-reload"""
    python = str(venv_python) if venv_python.exists() else sys.executable
    host = os.getenv("HOST", "0.0.0.0")
    port = os.getenv("PORT", "8000")

    print("Starting Bank Ledger API (development)")
    print(f"Docs: http://localhost:{port}/docs")
    print("Press Ctrl+C to stop")

    cmd = [
        python, "-m", "uvicorn", "bank_ledger.main:app",
        "--host", host,
        "--port", port,
        "--reload",
        "--reload-dir", "bank_ledger",
    ]

    try:
        return subprocess.run(cmd, cwd=str(project_root)).returncode
    except KeyboardInterrupt:
        print("\nShutting down server...")
        return 0


if __name__ == "__main__":
    sys.exit(run_server())
