#!/usr/bin/env python3
"""Run the dispatch API under uvicorn, honouring the PORT environment variable."""

import os
import subprocess
import sys

DEFAULT_PORT = 8000


def _port() -> int:
    raw = os.environ.get("PORT", str(DEFAULT_PORT))
    try:
        return int(raw)
    except ValueError:
        print(f"Warning: invalid PORT '{raw}', falling back to {DEFAULT_PORT}", file=sys.stderr)
        return DEFAULT_PORT


def _with_src_on_path() -> dict:
    """Environment for the child process with ./src importable without an install."""
    env = dict(os.environ)
    src_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "src")
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = f"{src_path}{os.pathsep}{existing}" if existing else src_path
    return env


def main() -> int:
    port = _port()
    # One worker only: relay subscriptions and the in-memory store are per process.
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        "neighborcare.main:app",
        "--host",
        os.environ.get("HOST", "0.0.0.0"),
        "--port",
        str(port),
        "--workers",
        "1",
        "--proxy-headers",
        "--forwarded-allow-ips",
        "*",
    ]
    print(f"Starting NeighborCare dispatch API on port {port}", file=sys.stderr)
    try:
        code = subprocess.call(cmd, env=_with_src_on_path())
    except KeyboardInterrupt:
        print("Server interrupted by user", file=sys.stderr)
        return 0
    if code != 0:
        print(f"Uvicorn exited with code {code}", file=sys.stderr)
    return code


if __name__ == "__main__":
    sys.exit(main())
