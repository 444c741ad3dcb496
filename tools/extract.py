#!/usr/bin/env python3
"""Stage a prebuilt Wine WoW64 archive into the bundle layout.

The input is a ``wine-<ver>-amd64-wow64.tar.xz`` produced by the Wine
build.  It unpacks to a single ``wine-*amd64-wow64`` directory, which is
moved to ``<stage>/wine64`` so later stages can rely on a fixed path.
"""

import argparse
import fnmatch
import os
import re
import shutil
import sys
import tarfile

from _env import WINE_DIR

# Map of format string -> tarfile mode
_FORMATS = {
    "tar.gz":  "r:gz",
    "tgz":     "r:gz",
    "tar.xz":  "r:xz",
    "txz":     "r:xz",
    "tar.bz2": "r:bz2",
    "tbz2":    "r:bz2",
    "tar":     "r:",
}

_ARCHIVE_RE = re.compile(r"amd64-wow64.*\.tar\.xz$")
_RUNTIME_DIR_GLOB = "wine-*amd64-wow64"


def is_runtime_archive(path):
    """True if *path* names a WoW64 Wine tarball."""
    return _ARCHIVE_RE.search(os.path.basename(path)) is not None


def detect_format(path):
    """Detect archive format from filename."""
    name = os.path.basename(path).lower()
    # Check multi-part extensions first (longest match)
    for fmt in ("tar.gz", "tar.xz", "tar.bz2"):
        if name.endswith("." + fmt):
            return fmt
    for fmt in ("tgz", "txz", "tbz2", "tar"):
        if name.endswith("." + fmt):
            return fmt
    return None


def extract_tar_native(archive, output, mode):
    """Extract using Python's tarfile module."""
    with tarfile.open(archive, mode) as tf:
        for member in tf.getmembers():
            member.name = os.path.normpath(member.name)
            # Security: prevent path traversal
            dest = os.path.abspath(os.path.join(output, member.name))
            root = os.path.abspath(output)
            if dest != root and not dest.startswith(root + os.sep):
                print(f"error: path traversal detected: {member.name}", file=sys.stderr)
                sys.exit(1)
            try:
                tf.extract(member, output, filter="tar")
            except tarfile.FilterError as e:
                print(f"error: unsafe archive member {member.name}: {e}", file=sys.stderr)
                sys.exit(1)


def find_runtime_dir(stage):
    """Return the top-level ``wine-*amd64-wow64`` directory under *stage*."""
    for name in sorted(os.listdir(stage)):
        path = os.path.join(stage, name)
        if fnmatch.fnmatch(name, _RUNTIME_DIR_GLOB) and os.path.isdir(path):
            return path
    print(f"error: archive did not contain a {_RUNTIME_DIR_GLOB} directory", file=sys.stderr)
    sys.exit(1)


def stage_runtime(archive, stage):
    """Extract *archive* and normalize it to ``<stage>/wine64``.

    Returns the normalized runtime directory.
    """
    fmt = detect_format(archive)
    if fmt is None:
        print(f"error: cannot detect format of {archive}", file=sys.stderr)
        sys.exit(1)

    os.makedirs(stage, exist_ok=True)
    extract_tar_native(archive, stage, _FORMATS[fmt])

    found = find_runtime_dir(stage)
    wine_dir = os.path.join(stage, WINE_DIR)
    if os.path.lexists(wine_dir):
        shutil.rmtree(wine_dir)
    os.rename(found, wine_dir)
    return wine_dir


def main():
    parser = argparse.ArgumentParser(description="Stage a Wine WoW64 archive")
    parser.add_argument("--archive", required=True, help="Path to the *-amd64-wow64.tar.xz")
    parser.add_argument("--stage-dir", required=True, help="Stage directory")
    args = parser.parse_args()

    if not os.path.isfile(args.archive):
        print(f"error: archive not found: {args.archive}", file=sys.stderr)
        sys.exit(1)
    if not is_runtime_archive(args.archive):
        print("error: The input must be a *-amd64-wow64.tar.xz built by build_wine.sh",
              file=sys.stderr)
        sys.exit(1)

    print(stage_runtime(args.archive, args.stage_dir))


if __name__ == "__main__":
    main()
