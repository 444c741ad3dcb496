from __future__ import annotations

import os
import struct
import sys
from pathlib import Path

import pytest

_REPO = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO / "tools"))

EM_X86_64 = 62
EM_AARCH64 = 183

_PT_LOAD = 1
_PT_DYNAMIC = 2
_SHT_STRTAB = 3
_SHT_DYNAMIC = 6
_DT_NULL = 0
_DT_NEEDED = 1
_DT_STRTAB = 5
_DT_STRSZ = 10


def _align(n: int, a: int = 8) -> int:
    return (n + a - 1) & ~(a - 1)


def elf_bytes(needed: tuple[str, ...] | list[str] = (), machine: int = EM_X86_64) -> bytes:
    """Build a minimal little-endian ELF64 shared object.

    Carries PT_LOAD (identity-mapped over the whole file), PT_DYNAMIC and
    the .dynstr/.dynamic/.shstrtab sections, which is everything a
    DT_NEEDED reader looks at.
    """
    dynstr = b"\x00"
    name_offsets = []
    for name in needed:
        name_offsets.append(len(dynstr))
        dynstr += name.encode() + b"\x00"
    shstrtab = b"\x00.dynstr\x00.dynamic\x00.shstrtab\x00"

    phoff = 64
    phnum = 2
    dynstr_off = phoff + 56 * phnum
    dyn_off = _align(dynstr_off + len(dynstr))
    tags = [(_DT_NEEDED, off) for off in name_offsets]
    tags += [(_DT_STRTAB, dynstr_off), (_DT_STRSZ, len(dynstr)), (_DT_NULL, 0)]
    dynamic = b"".join(struct.pack("<qQ", tag, val) for tag, val in tags)
    shstr_off = dyn_off + len(dynamic)
    shoff = _align(shstr_off + len(shstrtab))
    shnum = 4
    total = shoff + 64 * shnum

    ident = b"\x7fELF" + bytes([2, 1, 1, 0]) + b"\x00" * 8
    ehdr = ident + struct.pack("<HHIQQQIHHHHHH", 3, machine, 1, 0, phoff, shoff, 0,
                               64, 56, phnum, 64, shnum, 3)
    phdrs = (
        struct.pack("<IIQQQQQQ", _PT_LOAD, 5, 0, 0, 0, total, total, 0x1000)
        + struct.pack("<IIQQQQQQ", _PT_DYNAMIC, 6, dyn_off, dyn_off, dyn_off,
                      len(dynamic), len(dynamic), 8)
    )
    shdrs = (
        b"\x00" * 64
        + struct.pack("<IIQQQQIIQQ", 1, _SHT_STRTAB, 2, dynstr_off, dynstr_off,
                      len(dynstr), 0, 0, 1, 0)
        + struct.pack("<IIQQQQIIQQ", 9, _SHT_DYNAMIC, 3, dyn_off, dyn_off,
                      len(dynamic), 1, 0, 8, 16)
        + struct.pack("<IIQQQQIIQQ", 18, _SHT_STRTAB, 0, 0, shstr_off,
                      len(shstrtab), 0, 0, 1, 0)
    )

    buf = bytearray(total)
    buf[0:64] = ehdr
    buf[phoff:phoff + len(phdrs)] = phdrs
    buf[dynstr_off:dynstr_off + len(dynstr)] = dynstr
    buf[dyn_off:dyn_off + len(dynamic)] = dynamic
    buf[shstr_off:shstr_off + len(shstrtab)] = shstrtab
    buf[shoff:shoff + len(shdrs)] = shdrs
    return bytes(buf)


@pytest.fixture
def make_elf():
    """Callable: make_elf(path, needed=[...], machine=EM_X86_64) -> str path."""

    def _make(path, needed=(), machine=EM_X86_64):
        path = str(path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(elf_bytes(needed, machine))
        return path

    return _make


@pytest.fixture
def bootstrap(tmp_path: Path) -> Path:
    """An empty x86_64 reference root with the usual library directories."""
    root = tmp_path / "bootstrap"
    for d in ("lib/x86_64-linux-gnu", "usr/lib/x86_64-linux-gnu", "lib64", "usr/lib64"):
        (root / d).mkdir(parents=True)
    return root
