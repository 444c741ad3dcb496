#!/usr/bin/env python3
"""Generate the aarch64 launcher scripts and README for a portable bundle.

``bin/_env.sh`` locates the bundle root from its own path (following
symlinks, so ``bin/wine`` can be linked into $PATH) and exports the Box64
search paths.  Each wrapper sources it and execs Box64 on the matching
x86_64 Wine binary, passing all arguments through untouched.
"""

import argparse
import os
import sys

from _env import BIN_DIR, README_NAME

# (wrapper name, binary under wine64/bin)
WRAPPERS = (
    ("wine64", "wine64"),
    ("wineserver", "wineserver"),
    ("winecfg", "winecfg"),
    # WoW64 builds ship no 32-bit loader; 'wine' is wine64.
    ("wine", "wine64"),
)

_ENV_SCRIPT = """\
#!/usr/bin/env bash
set -euo pipefail
# Resolve root of the portable bundle
SOURCE="${BASH_SOURCE[0]}"
while [ -h "$SOURCE" ]; do
  DIR="$( cd -P "$( dirname "$SOURCE" )" >/dev/null 2>&1 && pwd )"
  SOURCE="$(readlink "$SOURCE")"
  [[ $SOURCE != /* ]] && SOURCE="$DIR/$SOURCE"
done
ROOT="$( cd -P "$( dirname "$SOURCE" )" >/dev/null 2>&1 && pwd )/.."

export BOX64_PATH="${BOX64_PATH:-$ROOT/wine64/bin:$ROOT/wine64/lib:$ROOT/wine64/lib64:$ROOT/wine64/lib/wine/x86_64-unix}"
export BOX64_LD_LIBRARY_PATH="${BOX64_LD_LIBRARY_PATH:-$ROOT/runtime/x86_64/lib:$ROOT/wine64/lib:$ROOT/wine64/lib64}"
export BOX64="${BOX64:-$ROOT/runtime/box64/box64}"

# Bundled x86_64 libraries (and the loader) always come first
export BOX64_LD_LIBRARY_PATH="$ROOT/runtime/x86_64/lib:$BOX64_LD_LIBRARY_PATH"

# Quiet first-run Gecko/GStreamer prompts unless user overrides
export WINEDLLOVERRIDES="${WINEDLLOVERRIDES:-mshtml=,winegstreamer=}"
"""

_WRAPPER_TEMPLATE = """\
#!/usr/bin/env bash
set -euo pipefail
SCRIPT_DIR="$( cd -- "$( dirname -- "${{BASH_SOURCE[0]}}" )" &> /dev/null && pwd )"
# shellcheck source=/dev/null
source "$SCRIPT_DIR/_env.sh"
exec "$BOX64" "$ROOT/wine64/bin/{target}" "$@"
"""

_README = """\
# Wine aarch64 portable (box64+wow64)

This build runs on aarch64 (ARM64) Linux without extra packages:
- Uses Box64 to execute the bundled x86_64 WoW64 Wine.
- Bundles all required x86_64 runtime libraries and the x86_64 dynamic loader.

## Usage

```bash
tar -xf wine-<ver>-aarch64-portable.tar.xz
cd wine-<ver>-aarch64-portable
./bin/winecfg
# or:
./bin/wine your_app.exe
```

## Layout

- `bin/` - launchers (`wine`, `wine64`, `wineserver`, `winecfg`) and `_env.sh`
- `wine64/` - the x86_64 WoW64 Wine build
- `runtime/box64/box64` - Box64 built for aarch64
- `runtime/x86_64/lib/` - x86_64 libraries and `ld-linux-x86-64.so.2`

## Environment

`BOX64_PATH`, `BOX64_LD_LIBRARY_PATH`, `BOX64` and `WINEDLLOVERRIDES` are
only set when not already present, so they can be overridden per call.
The bundled library directory is always searched first.
"""


def _write_executable(path, content):
    with open(path, "w") as f:
        f.write(content)
    os.chmod(path, 0o755)
    return path


def write_env_script(bin_dir):
    return _write_executable(os.path.join(bin_dir, "_env.sh"), _ENV_SCRIPT)


def write_wrapper(bin_dir, name, target):
    return _write_executable(os.path.join(bin_dir, name),
                             _WRAPPER_TEMPLATE.format(target=target))


def write_readme(stage):
    path = os.path.join(stage, README_NAME)
    with open(path, "w") as f:
        f.write(_README)
    return path


def generate_launchers(stage, wrappers=WRAPPERS):
    """Write ``bin/_env.sh`` and every wrapper; returns the written paths."""
    bin_dir = os.path.join(stage, BIN_DIR)
    os.makedirs(bin_dir, exist_ok=True)
    written = [write_env_script(bin_dir)]
    for name, target in wrappers:
        written.append(write_wrapper(bin_dir, name, target))
    return written


def main():
    parser = argparse.ArgumentParser(description="Generate aarch64 launcher scripts")
    parser.add_argument("--stage-dir", required=True, help="Stage directory")
    parser.add_argument("--no-readme", action="store_true", help="Skip README.aarch64.md")
    args = parser.parse_args()

    if not os.path.isdir(args.stage_dir):
        print(f"error: stage directory not found: {args.stage_dir}", file=sys.stderr)
        sys.exit(1)

    for path in generate_launchers(args.stage_dir):
        print(path)
    if not args.no_readme:
        print(write_readme(args.stage_dir))


if __name__ == "__main__":
    main()
