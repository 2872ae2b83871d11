"""Query entrypoint.

This script answers a question about an indexed codebase and prints the
answer followed by the cited code chunks.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from codebase_rag.app.container import build_container
from codebase_rag.config import GlobalConfig, configure_logging
from codebase_rag.pipelines.rag_pipeline import IndexNotFoundError, format_citation


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ask a question about an indexed codebase")

    parser.add_argument(
        "question",
        type=str,
        help="Natural-language question.",
    )

    parser.add_argument(
        "--config-file",
        "-c",
        required=False,
        type=str,
        default=str(REPO_ROOT / "config" / "config.yaml"),
        help="Path to the YAML configuration file.",
    )

    parser.add_argument(
        "--show-candidates",
        action="store_true",
        help="Also print the vector recall candidates with their cosine scores.",
    )

    return parser.parse_args()


def main() -> int:
    args = parse_args()

    cfg = GlobalConfig.load(args.config_file)
    configure_logging(cfg.logging)
    container = build_container(cfg)

    try:
        result = container.pipeline.run(args.question)
    except IndexNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 1

    print(result["response"])

    sources = result["source_nodes"]
    if sources:
        print("\nSources:")
        for i, source in enumerate(sources, start=1):
            print(f"  [{i}] {format_citation(source)}")

    if args.show_candidates:
        print("\nCandidates:")
        for candidate in result["candidates"]:
            print(f"  {candidate.score:.4f}  {candidate.chunk.location} {candidate.chunk.label}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
