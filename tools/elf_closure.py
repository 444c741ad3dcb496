#!/usr/bin/env python3
"""x86_64 shared-library closure resolver.

Starting from a set of entry-point ELF files, follows DT_NEEDED entries
transitively and resolves each soname against the library directories of
an x86_64 reference root.  The result is the flat set of library files
(plus the x86_64 dynamic loader) a bundle needs to run those entry points
under Box64 on a host with no x86_64 libraries of its own.

Lookup follows a fixed priority order, first match wins.  A soname that
cannot be found anywhere is reported and skipped: a bundle missing one
optional library is still more useful than no bundle at all.

Exit codes (standalone):
  0 - closure computed (unresolved names are warnings only)
  1 - reference root missing
  2 - usage error
"""

import argparse
import glob
import os
import sys
from collections import deque
from dataclasses import dataclass, field

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from _env import bootstrap_root

_ELF_MAGIC = b"\x7fELF"

# Library directories under the reference root, highest priority first.
SEARCH_SUBDIRS = (
    "lib/x86_64-linux-gnu",
    "usr/lib/x86_64-linux-gnu",
    "lib64",
    "usr/lib64",
    "usr/local/lib/x86_64-linux-gnu",
    "usr/local/lib64",
)

LOADER_CANDIDATES = (
    "lib64/ld-linux-x86-64.so.2",
    "lib/x86_64-linux-gnu/ld-linux-x86-64.so.2",
    "lib/ld-linux-x86-64.so.2",
)


def dedupe(items):
    """Drop repeated items, keeping the first occurrence."""
    seen = set()
    out = []
    for x in items:
        if x not in seen:
            seen.add(x)
            out.append(x)
    return out


def build_search_path(root, extra_dirs=()):
    """Return the ordered, deduplicated library directories for *root*.

    *extra_dirs* are appended after the standard ones.
    """
    dirs = [os.path.normpath(os.path.join(root, d)) for d in SEARCH_SUBDIRS]
    dirs.extend(os.path.abspath(d) for d in extra_dirs)
    return tuple(dedupe(dirs))


def is_x86_64_elf(path):
    """True if *path* is a 64-bit little-endian x86-64 ELF file."""
    try:
        with open(path, "rb") as f:
            if f.read(4) != _ELF_MAGIC:
                return False
            f.seek(0)
            elf = ELFFile(f)
            return (elf.elfclass == 64 and elf.little_endian
                    and elf["e_machine"] == "EM_X86_64")
    except (OSError, ELFError):
        return False


def read_needed(path):
    """Return DT_NEEDED entries of *path*, in dynamic-section order.

    Statically linked files (no PT_DYNAMIC) and unparsable files yield [].
    """
    needed = []
    try:
        with open(path, "rb") as f:
            elf = ELFFile(f)
            for segment in elf.iter_segments():
                if segment.header.p_type != "PT_DYNAMIC":
                    continue
                for tag in segment.iter_tags():
                    if tag.entry.d_tag == "DT_NEEDED":
                        needed.append(tag.needed)
                # There is only one PT_DYNAMIC; the runtime loader
                # ignores any others.
                break
    except (OSError, ELFError):
        return []
    return needed


def find_library(name, search_path):
    """Locate soname *name* in *search_path*; returns a path or None.

    Each directory is tried in turn: first the exact file name, then, for
    a bare ``.so`` name, any file that starts with it (``libfoo.so`` may
    only exist as ``libfoo.so.6.0.0``), taking the lexicographically first.
    """
    for d in search_path:
        if not os.path.isdir(d):
            continue
        p = os.path.join(d, name)
        if os.path.isfile(p):
            return p
        if name.endswith(".so"):
            pattern = os.path.join(d, glob.escape(name)) + "*"
            # Dangling links and directories are not candidates.
            matches = sorted(m for m in glob.glob(pattern) if os.path.isfile(m))
            if matches:
                return matches[0]
    return None


def find_loader(root, candidates=LOADER_CANDIDATES):
    """Return the first existing x86_64 dynamic loader under *root*, or None."""
    for rel in candidates:
        p = os.path.join(root, rel)
        if os.path.exists(p):
            return p
    return None


def discover_shared_objects(lib_dir):
    """Return every regular ``*.so`` file under *lib_dir* (recursive)."""
    found = []
    if not os.path.isdir(lib_dir):
        return found
    for dirpath, dirnames, filenames in os.walk(lib_dir):
        dirnames.sort()
        for fname in sorted(filenames):
            fpath = os.path.join(dirpath, fname)
            if fname.endswith(".so") and os.path.isfile(fpath) and not os.path.islink(fpath):
                found.append(fpath)
    return found


@dataclass
class Closure:
    """Outcome of one resolution run."""
    libraries: list = field(default_factory=list)
    resolved: dict = field(default_factory=dict)
    missing: list = field(default_factory=list)
    loader: str | None = None


class DependencyResolver:
    """Resolve the DT_NEEDED closure of a set of ELF files.

    The search path and loader root are fixed for the resolver's lifetime;
    all per-run state lives in resolve() so an instance can be reused.
    """

    def __init__(self, search_path, loader_root=None, loader_candidates=LOADER_CANDIDATES):
        self.search_path = tuple(search_path)
        self.loader_root = loader_root
        self.loader_candidates = tuple(loader_candidates)

    def resolve(self, entry_points, shared_objects=()):
        closure = Closure()
        seen = set()
        found = []
        queue = deque(entry_points)
        queue.extend(shared_objects)

        while queue:
            f = queue.popleft()
            if not os.path.isfile(f):
                continue
            if not is_x86_64_elf(f):
                continue
            for name in read_needed(f):
                if name in seen:
                    continue
                seen.add(name)
                p = find_library(name, self.search_path)
                if p is None:
                    print(f"warning: could not find {name} in bootstrap; continuing",
                          file=sys.stderr)
                    closure.missing.append(name)
                    continue
                closure.resolved[name] = p
                found.append(p)
                queue.append(p)

        if self.loader_root is not None:
            closure.loader = find_loader(self.loader_root, self.loader_candidates)
            if closure.loader is None:
                print(f"warning: no x86_64 dynamic loader found under {self.loader_root}; "
                      "bundle will not boot", file=sys.stderr)
            else:
                found.append(closure.loader)

        closure.libraries = dedupe(found)
        return closure


def main():
    parser = argparse.ArgumentParser(description="Resolve x86_64 shared-library closure")
    parser.add_argument("elf_files", nargs="+", metavar="ELF",
                        help="Entry-point ELF files (directories are scanned for *.so)")
    parser.add_argument("--root", default=None,
                        help="x86_64 reference root (default: $BOOTSTRAP_X64)")
    parser.add_argument("--extra-lib-dir", action="append", dest="extra_lib_dirs",
                        default=[], help="Extra library directory, searched last (repeatable)")
    args = parser.parse_args()

    root = bootstrap_root(args.root)

    entry_points = []
    shared_objects = []
    for path in args.elf_files:
        if os.path.isdir(path):
            shared_objects.extend(discover_shared_objects(path))
        else:
            entry_points.append(os.path.abspath(path))

    resolver = DependencyResolver(build_search_path(root, args.extra_lib_dirs), loader_root=root)
    closure = resolver.resolve(entry_points, shared_objects)
    for p in closure.libraries:
        print(p)


if __name__ == "__main__":
    main()
