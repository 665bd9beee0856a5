"""RPG Forge — dev launcher. Starts the API server in watch mode."""

import argparse
import logging
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="RPG Forge dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Clean and create demo universes")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", default=PORT)
    parser.add_argument("--log-level", default="info",
                        choices=["debug", "info", "warning", "error"])
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    data_dir = (args.data_dir or ROOT / "data").resolve()
    if args.demo:
        from rpg_forge.demo import create_demo_data
        create_demo_data(data_dir)

    # The server reads the same data dir through the environment
    env = os.environ.copy()
    env["DATA_DIR"] = str(data_dir)

    print(f"Starting API on http://localhost:{args.port} ...")
    proc = subprocess.Popen(
        ["uvicorn", "rpg_forge.app:app", "--reload",
         "--host", args.host, "--port", str(args.port), "--log-level", args.log_level],
        cwd=ROOT, env=env,
    )

    def shutdown(*_):
        print("\nShutting down...")
        proc.terminate()
        proc.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)
    proc.wait()


if __name__ == "__main__":
    main()
