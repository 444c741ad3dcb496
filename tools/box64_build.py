#!/usr/bin/env python3
"""Cross-build Box64 for aarch64 and stage it into the bundle.

Clones (or reuses) a Box64 checkout, configures it with the aarch64 cross
compilers and the ARM dynarec, builds, installs into
``<stage>/runtime/box64`` and flattens the installed binary to
``<stage>/runtime/box64/box64``.
"""

import argparse
import multiprocessing
import os
import shutil
import subprocess
import sys

from _env import BOX64_DIR, clean_env

BOX64_GIT_URL = "https://github.com/ptitSeb/box64.git"
DEFAULT_CC = "aarch64-linux-gnu-gcc"
DEFAULT_CXX = "aarch64-linux-gnu-g++"


def _run(cmd, cwd=None):
    """Run *cmd* with the sanitized env, exiting on failure."""
    result = subprocess.run(cmd, cwd=cwd, env=clean_env())
    if result.returncode != 0:
        print(f"error: {cmd[0]} failed with exit code {result.returncode}", file=sys.stderr)
        sys.exit(1)


def clone_source(url, dest):
    _run(["git", "clone", "--depth", "1", url, dest])
    return dest


def configure(source_dir, build_dir, prefix, cc=DEFAULT_CC, cxx=DEFAULT_CXX):
    """Run the cmake configure step for an aarch64 dynarec build."""
    os.makedirs(build_dir, exist_ok=True)
    _run([
        "cmake", os.path.abspath(source_dir),
        "-DCMAKE_BUILD_TYPE=RelWithDebInfo",
        "-DARM_DYNAREC=ON",
        f"-DCMAKE_C_COMPILER={cc}",
        f"-DCMAKE_CXX_COMPILER={cxx}",
        f"-DCMAKE_INSTALL_PREFIX={os.path.abspath(prefix)}",
    ], cwd=build_dir)


def build(build_dir, jobs=None):
    jobs = jobs or multiprocessing.cpu_count()
    _run(["make", f"-j{jobs}"], cwd=build_dir)
    _run(["make", "install"], cwd=build_dir)


def install_engine(prefix):
    """Move ``<prefix>/bin/box64`` to ``<prefix>/box64`` and drop ``bin/``."""
    installed = os.path.join(prefix, "bin", "box64")
    if not os.path.isfile(installed):
        print(f"error: box64 binary not found after install: {installed}", file=sys.stderr)
        sys.exit(1)
    dest = os.path.join(prefix, "box64")
    shutil.copyfile(installed, dest)
    os.chmod(dest, 0o755)
    shutil.rmtree(os.path.join(prefix, "bin"))
    return dest


def build_box64(stage, work_root, source_dir=None, cc=DEFAULT_CC, cxx=DEFAULT_CXX, jobs=None):
    """Build Box64 into *stage*; returns the staged binary path.

    A fresh shallow clone is made under ``<work_root>/src`` unless
    *source_dir* points at an existing checkout.
    """
    if source_dir is None:
        src = os.path.join(work_root, "src")
        os.makedirs(src, exist_ok=True)
        source_dir = clone_source(BOX64_GIT_URL, os.path.join(src, "box64"))
    elif not os.path.isdir(source_dir):
        print(f"error: source directory not found: {source_dir}", file=sys.stderr)
        sys.exit(1)

    prefix = os.path.join(stage, BOX64_DIR)
    build_dir = os.path.join(source_dir, "build")
    configure(source_dir, build_dir, prefix, cc=cc, cxx=cxx)
    build(build_dir, jobs=jobs)
    return install_engine(prefix)


def main():
    parser = argparse.ArgumentParser(description="Cross-build Box64 for aarch64")
    parser.add_argument("--stage-dir", required=True, help="Stage directory")
    parser.add_argument("--work-dir", required=True, help="Scratch directory for the checkout")
    parser.add_argument("--source-dir", default=None,
                        help="Existing Box64 checkout (skips git clone)")
    parser.add_argument("--cc", default=DEFAULT_CC, help=f"C compiler (default: {DEFAULT_CC})")
    parser.add_argument("--cxx", default=DEFAULT_CXX, help=f"C++ compiler (default: {DEFAULT_CXX})")
    parser.add_argument("-j", "--jobs", type=int, default=None,
                        help="Parallel make jobs (default: CPU count)")
    args = parser.parse_args()

    print(build_box64(args.stage_dir, args.work_dir, source_dir=args.source_dir,
                      cc=args.cc, cxx=args.cxx, jobs=args.jobs))


if __name__ == "__main__":
    main()
