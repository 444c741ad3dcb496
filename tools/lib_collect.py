#!/usr/bin/env python3
"""Copy a resolved library closure into one flat directory.

Each file lands under its base name with mode 0755, contents followed
through symlinks.  Base names must be unique in a flat layout, so the
first path (in resolver priority order) claiming a name keeps it; later
paths to the same real file are dropped quietly, later paths to a
different file are dropped with a warning.
"""

import argparse
import os
import shutil
import sys

from tqdm import tqdm


def collect_libraries(paths, dest):
    """Copy *paths* into *dest*; returns the destination paths in order."""
    os.makedirs(dest, exist_ok=True)
    claimed = {}
    copied = []
    for src in tqdm(paths, desc="Copying libraries", unit="lib", file=sys.stderr, leave=False):
        name = os.path.basename(src)
        owner = claimed.get(name)
        if owner is not None:
            if os.path.realpath(owner) != os.path.realpath(src):
                tqdm.write(f"warning: {name} from {src} collides with {owner}; keeping {owner}",
                           file=sys.stderr)
            continue
        claimed[name] = src
        dst = os.path.join(dest, name)
        shutil.copyfile(src, dst)
        os.chmod(dst, 0o755)
        copied.append(dst)
    return copied


def main():
    parser = argparse.ArgumentParser(description="Copy libraries into a flat directory")
    parser.add_argument("--output-dir", required=True, help="Destination directory")
    parser.add_argument("--list", default=None,
                        help="File with library paths (one per line, default: stdin)")
    args = parser.parse_args()

    if args.list:
        with open(args.list) as f:
            lines = f.read().splitlines()
    else:
        lines = sys.stdin.read().splitlines()
    paths = [line.strip() for line in lines if line.strip()]

    missing = [p for p in paths if not os.path.isfile(p)]
    if missing:
        print(f"error: library not found: {missing[0]}", file=sys.stderr)
        sys.exit(1)

    copied = collect_libraries(paths, args.output_dir)
    print(f"Copied {len(copied)} libraries to {args.output_dir}")


if __name__ == "__main__":
    main()
