#!/usr/bin/env python3
"""Package an out-of-the-box aarch64 Wine bundle.

Stages, in order:
1. extract the provided x86_64 WoW64 Wine build into ``wine64/``
2. cross-build Box64 (aarch64) into ``runtime/box64/``
3. resolve the x86_64 library closure of Wine against the 64-bit bootstrap
4. copy that closure (plus ld-linux) into ``runtime/x86_64/lib/``
5. generate aarch64 wrapper scripts in ``bin/`` that run Wine under Box64

The stage lives in a fresh temporary work root; its path is printed at
the end.  ``--output`` additionally packs it into a ``.tar.xz``.
"""

import os
import re
import subprocess
import tempfile

import click

from _env import BOOTSTRAP_ENV, DEFAULT_BOOTSTRAP, LIB_DIR, WINE_DIR, bootstrap_root, clean_env
from box64_build import build_box64
from elf_closure import DependencyResolver, build_search_path, discover_shared_objects
from extract import is_runtime_archive, stage_runtime
from launcher_gen import generate_launchers, write_readme
from lib_collect import collect_libraries

# Resolved first, in this order; every *.so under wine64/lib follows.
ENTRY_POINTS = (
    os.path.join("bin", "wine64"),
    os.path.join("bin", "wineserver"),
)


def bundle_name(archive):
    """``wine-9.0-amd64-wow64.tar.xz`` -> ``wine-9.0-aarch64-portable``."""
    base = re.sub(r"\.tar\.xz$", "", os.path.basename(archive))
    return base.replace("amd64-wow64", "aarch64-portable")


def collect_runtime_libraries(stage, root):
    """Resolve and copy Wine's x86_64 closure; returns the copied paths."""
    wine_dir = os.path.join(stage, WINE_DIR)
    entry_points = [os.path.join(wine_dir, p) for p in ENTRY_POINTS]
    shared_objects = discover_shared_objects(os.path.join(wine_dir, "lib"))

    resolver = DependencyResolver(build_search_path(root), loader_root=root)
    closure = resolver.resolve(entry_points, shared_objects)

    click.echo(f"==> Copying {len(closure.libraries)} libraries")
    return collect_libraries(closure.libraries, os.path.join(stage, LIB_DIR))


def pack_stage(stage, output, name):
    """Pack *stage* as ``<name>/...`` into the .tar.xz *output*."""
    os.makedirs(os.path.dirname(output) or ".", exist_ok=True)
    cmd = ["tar", "-C", os.path.dirname(stage),
           f"--transform=s,^{os.path.basename(stage)},{name},",
           "-cJf", output, os.path.basename(stage)]
    result = subprocess.run(cmd, env=clean_env())
    if result.returncode != 0:
        click.echo(f"error: tar failed with exit code {result.returncode}", err=True)
        raise SystemExit(1)


@click.command()
@click.argument("archive", type=click.Path(dir_okay=False))
@click.option("--bootstrap", envvar=BOOTSTRAP_ENV, default=DEFAULT_BOOTSTRAP, show_default=True,
              help=f"x86_64 reference root filesystem (env: {BOOTSTRAP_ENV})")
@click.option("--box64-src", type=click.Path(file_okay=False), default=None,
              help="Existing Box64 checkout to build instead of cloning")
@click.option("--output", type=click.Path(dir_okay=False), default=None,
              help="Also pack the bundle into this .tar.xz")
def main(archive: str, bootstrap: str, box64_src: str | None, output: str | None):
    """Build a portable aarch64 bundle from a *-amd64-wow64.tar.xz Wine build."""

    if not is_runtime_archive(archive):
        click.echo("error: The input must be a *-amd64-wow64.tar.xz built by build_wine.sh",
                   err=True)
        raise SystemExit(1)
    name = bundle_name(archive)
    archive = os.path.realpath(archive)
    if not os.path.isfile(archive):
        click.echo(f"error: archive not found: {archive}", err=True)
        raise SystemExit(1)

    root = bootstrap_root(bootstrap)

    work_root = tempfile.mkdtemp()
    stage = os.path.join(work_root, "stage")
    os.makedirs(stage)

    click.echo("==> Extracting Wine WoW64 build")
    stage_runtime(archive, stage)

    click.echo("==> Building Box64 (aarch64)")
    build_box64(stage, work_root, source_dir=box64_src)

    click.echo("==> Collecting x86_64 runtime libraries from bootstrap")
    collect_runtime_libraries(stage, root)

    click.echo("==> Creating aarch64 wrapper scripts")
    generate_launchers(stage)
    write_readme(stage)

    if output:
        output = os.path.abspath(output)
        click.echo(f"==> Packing {output}")
        pack_stage(stage, output, name)

    click.echo(stage)


if __name__ == "__main__":
    main()
