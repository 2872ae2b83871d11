"""Index build entrypoint.

This script loads the source files under a directory, splits them into code
chunks, embeds each chunk and writes the vector index to the configured
store path.
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


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build the vector index for a source tree")

    parser.add_argument(
        "root_dir",
        type=str,
        help="Directory to index.",
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
        "--store-path",
        "-o",
        required=False,
        type=str,
        default=None,
        help="Override the index file path from config (optional).",
    )

    return parser.parse_args()


def main() -> int:
    args = parse_args()

    cfg = GlobalConfig.load(args.config_file)
    if args.store_path:
        store_cfg = cfg.raw.setdefault("store", {})
        if not isinstance(store_cfg, dict):
            raise TypeError("'store' config must be a mapping to override path.")
        store_cfg["path"] = str(Path(args.store_path).resolve())

    configure_logging(cfg.logging)
    container = build_container(cfg)

    print(f"Indexing {args.root_dir} -> {container.store_path}")
    store = container.index_pipeline.run(args.root_dir)

    if store is None:
        print("No source files or chunks found; index not written.")
        return 1

    print(f"Index built: {len(store.chunks)} chunk(s), dimension {store.dimension}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
