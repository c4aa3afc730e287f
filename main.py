"""QuestLearn dev launcher. Starts the API server in watch mode."""

import argparse
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
    parser = argparse.ArgumentParser(description="QuestLearn dev launcher")
    parser.add_argument("--port", default=PORT, help=f"Port to listen on (default: {PORT})")
    parser.add_argument("--log-level", default=None,
                        help="Override QUESTLEARN_LOG_LEVEL (DEBUG logs prompts and completions)")
    parser.add_argument("--no-replay", action="store_true",
                        help="Embed history in the prompt only; don't replay turns to Gemini")
    args = parser.parse_args()

    # Build env for the subprocess so the backend picks up the overrides
    env = os.environ.copy()
    if args.log_level:
        env["QUESTLEARN_LOG_LEVEL"] = args.log_level
    if args.no_replay:
        env["QUESTLEARN_REPLAY_HISTORY"] = "false"

    print(f"Starting backend on http://localhost:{args.port} ...")
    proc = subprocess.Popen(
        ["uvicorn", "backend.app:app", "--reload", "--host", HOST, "--port", str(args.port)],
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
