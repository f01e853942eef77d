"""Run the repo_rag HTTP API.

The config file is exported as ``REPO_RAG_CONFIG`` so the application's
startup hook loads the same file; host and port come from its ``server``
section unless overridden on the command line.
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

import uvicorn

from repo_rag.config import GlobalConfig


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="repo_rag API server")

    parser.add_argument(
        "--config-file",
        "-c",
        required=True,
        type=str,
        help="Path to the YAML configuration file.",
    )
    parser.add_argument("--host", type=str, default=None, help="Override server.host (optional).")
    parser.add_argument("--port", type=int, default=None, help="Override server.port (optional).")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload.")

    return parser.parse_args()


def main() -> None:
    args = parse_args()

    cfg = GlobalConfig.load(args.config_file)
    os.environ["REPO_RAG_CONFIG"] = str(cfg.config_path)

    host = args.host or cfg.server["host"]
    port = args.port or cfg.server["port"]
    print(f"Server running on port {port}")

    uvicorn.run(
        "repo_rag.app.api:app",
        host=host,
        port=port,
        log_level=cfg.logging["level"].lower(),
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
