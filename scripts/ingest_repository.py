"""Repository ingestion entrypoint.

This script lists the files of a GitHub repository, chunks and embeds every
text file, and writes the chunks to the repository's collection in the
configured vector store, replacing any previous content.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from repo_rag.app.container import build_container
from repo_rag.common.errors import RepoRagError
from repo_rag.config import GlobalConfig


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest a GitHub repository into the vector store")

    parser.add_argument(
        "--owner",
        "-o",
        required=True,
        type=str,
        help="Repository owner (user or organisation).",
    )

    parser.add_argument(
        "--repo",
        "-r",
        required=True,
        type=str,
        help="Repository name.",
    )

    parser.add_argument(
        "--config-file",
        "-c",
        required=True,
        type=str,
        help="Path to the YAML configuration file.",
    )

    parser.add_argument(
        "--token",
        "-t",
        required=False,
        type=str,
        default=None,
        help="GitHub access token (defaults to $GITHUB_TOKEN or github.token in config).",
    )

    parser.add_argument(
        "--branch",
        "-b",
        required=False,
        type=str,
        default=None,
        help="Override the branch to read (optional).",
    )

    parser.add_argument(
        "--chunk-size",
        required=False,
        type=int,
        default=None,
        help="Override words per chunk (optional).",
    )

    parser.add_argument(
        "--overlap",
        required=False,
        type=int,
        default=None,
        help="Override words shared by consecutive chunks (optional).",
    )

    return parser.parse_args()


def _apply_overrides(cfg: GlobalConfig, args: argparse.Namespace) -> None:
    if args.chunk_size is not None or args.overlap is not None:
        chunking = cfg.raw.get("chunking") or {}
        if args.chunk_size is not None:
            chunking["size"] = int(args.chunk_size)
        if args.overlap is not None:
            chunking["overlap"] = int(args.overlap)
        cfg.raw["chunking"] = chunking

    if args.branch:
        github = cfg.raw.get("github") or {}
        github["branch"] = args.branch
        cfg.raw["github"] = github


def main() -> int:
    args = parse_args()

    cfg = GlobalConfig.load(args.config_file)
    _apply_overrides(cfg, args)
    logging.basicConfig(level=cfg.logging["level"], format="%(levelname)s %(name)s: %(message)s")

    container = build_container(cfg)
    token = args.token or os.environ.get("GITHUB_TOKEN") or container.credentials.get()

    try:
        print("Initializing embedding pipeline...")
        container.warm_up(progress_callback=lambda event: print(f"  {event['status']}: {event['model']}"))

        print(f"Ingesting {args.owner}/{args.repo}...")
        report = container.ingest_pipeline.ingest_repository(args.owner, args.repo, token)
    except (RepoRagError, ValueError) as e:
        print(f"Ingestion failed: {type(e).__name__}: {e}", file=sys.stderr)
        return 1

    summary = report.to_dict()
    print(
        f"Stored {summary['chunks_stored']} chunks from {summary['files_stored']} file(s) "
        f"into '{summary['collection']}' ({summary['files_skipped']} skipped)."
    )
    for failed in summary["failed_files"]:
        print(f"  failed: {failed['path']}: {failed['error']}", file=sys.stderr)

    print("Ingestion complete!")
    return 0 if report.ok else 2


if __name__ == "__main__":
    sys.exit(main())
