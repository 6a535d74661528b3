#!/usr/bin/env python3
"""
Project Index Utility
Walks a project directory and indexes its source files into the persistent
similarity store, the same way the /index endpoint does for a single file.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from codepilot.core import config
from codepilot.core.indexing import index_file

DEFAULT_EXTENSIONS = [".py", ".js", ".jsx", ".ts", ".tsx", ".go", ".rs", ".java", ".c", ".cpp", ".h"]
SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build"}


def iter_source_files(root: Path, extensions):
    for path in sorted(root.rglob("*")):
        if not path.is_file() or path.suffix not in extensions:
            continue
        if any(part in SKIP_DIRS for part in path.relative_to(root).parts):
            continue
        yield path


async def index_project(root: Path, extensions, chunk_size: int) -> int:
    store = config.get_vector_store()
    print(f"Store: {store.path} ({len(store)} records)")

    total_added = 0
    failed = 0
    for path in iter_source_files(root, extensions):
        rel = str(path.relative_to(root))
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            print(f"WARNING: Skipping {rel}: {e}")
            continue

        result = await index_file(store, text, rel, chunk_size)
        if result.failed:
            failed += 1
            print(f"ERROR: No embeddings for {rel}")
            continue
        total_added += result.added
        print(f"  {rel}: {result.chunks} chunks, {result.added} new")

    print(f"✓ Indexed {root} - {total_added} new records, {len(store)} total")
    return 1 if failed else 0


def main():
    parser = argparse.ArgumentParser(description="Index a project into the similarity store")
    parser.add_argument("root", nargs="?", default=".", help="Project directory (default: .)")
    parser.add_argument("--chunk-lines", type=int, default=config.INDEX_CHUNK_LINES,
                        help="Lines per chunk")
    parser.add_argument("--ext", action="append", dest="extensions",
                        help="File extension to include (repeatable)")
    args = parser.parse_args()

    root = Path(args.root).resolve()
    if not root.is_dir():
        print(f"ERROR: {root} is not a directory")
        sys.exit(1)

    extensions = set(args.extensions or DEFAULT_EXTENSIONS)
    sys.exit(asyncio.run(index_project(root, extensions, args.chunk_lines)))


if __name__ == "__main__":
    main()
