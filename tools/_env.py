"""Shared environment and layout settings for the portable bundle helpers.

Every stage works against the same stage directory layout and the same
x86_64 reference root (the "bootstrap").  This module owns both, plus the
whitelisted environment handed to git/cmake/make/tar subprocesses so a
host's compiler caches and locale settings cannot leak into the build.
"""

import os
import sys

BOOTSTRAP_ENV = "BOOTSTRAP_X64"
DEFAULT_BOOTSTRAP = "/opt/chroots/bionic64_chroot"

# Stage layout, relative to the stage directory.
WINE_DIR = "wine64"
BOX64_DIR = os.path.join("runtime", "box64")
LIB_DIR = os.path.join("runtime", "x86_64", "lib")
BIN_DIR = "bin"
README_NAME = "README.aarch64.md"

# Vars passed through from the host environment when present.
_PASSTHROUGH = frozenset({
    "PATH",
    "HOME", "USER", "LOGNAME",
    "TMPDIR", "TEMP", "TMP",
    "TERM",
})

# Vars pinned to fixed values for determinism.
_DETERMINISM_PINS = {
    "LC_ALL": "C",
    "LANG": "C",
    "SOURCE_DATE_EPOCH": "315576000",
    "CCACHE_DISABLE": "1",
}


def clean_env():
    """Return a clean env dict for subprocess env= parameter.

    Copies only whitelisted vars from the host, then applies
    determinism pins.  Callers layer helper-specific vars on top.
    """
    env = {}
    for key in _PASSTHROUGH:
        val = os.environ.get(key)
        if val is not None:
            env[key] = val
    env.update(_DETERMINISM_PINS)
    return env


def bootstrap_root(override=None):
    """Return the absolute x86_64 reference root, or exit if it is missing.

    *override* wins over $BOOTSTRAP_X64, which wins over the default.
    """
    root = override or os.environ.get(BOOTSTRAP_ENV) or DEFAULT_BOOTSTRAP
    if not os.path.isdir(root):
        print(f"error: Missing x64 bootstrap at {root} (did you untar bootstraps.tar.xz?)",
              file=sys.stderr)
        sys.exit(1)
    return os.path.abspath(root)
