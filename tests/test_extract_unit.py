"""Unit tests for tools/extract.py -- staging the Wine WoW64 archive."""
from __future__ import annotations

import io
import os
import tarfile

import pytest

from extract import (
    detect_format,
    extract_tar_native,
    find_runtime_dir,
    is_runtime_archive,
    stage_runtime,
)


def _make_tar(path, members, mode="w:xz"):
    """Create a tarball at *path* with members: list of (name, content) tuples.

    If content is None the entry is a directory.
    """
    with tarfile.open(path, mode) as tf:
        for name, content in members:
            info = tarfile.TarInfo(name)
            if content is None:
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tf.addfile(info)
            else:
                data = content if isinstance(content, bytes) else content.encode()
                info.size = len(data)
                info.mode = 0o755
                tf.addfile(info, io.BytesIO(data))
    return str(path)


@pytest.mark.parametrize("name,expected", [
    ("wine-9.0-amd64-wow64.tar.xz", True),
    ("/builds/wine-staging-9.2-amd64-wow64.tar.xz", True),
    ("wine-9.0-amd64-wow64-debug.tar.xz", True),
    ("wine-9.0-amd64.tar.xz", False),
    ("wine-9.0-amd64-wow64.tar.gz", False),
    ("wine-9.0-amd64-wow64.tar.xz.sig", False),
])
def test_is_runtime_archive(name, expected):
    assert is_runtime_archive(name) is expected


@pytest.mark.parametrize("name,expected", [
    ("foo.tar.xz", "tar.xz"),
    ("FOO.TXZ", "txz"),
    ("foo.tar.gz", "tar.gz"),
    ("foo.tbz2", "tbz2"),
    ("foo.tar", "tar"),
    ("foo.zip", None),
    ("foo", None),
])
def test_detect_format(name, expected):
    assert detect_format(name) == expected


def test_stage_runtime_normalizes_to_wine64(tmp_path):
    archive = _make_tar(tmp_path / "wine-9.0-amd64-wow64.tar.xz", [
        ("wine-9.0-amd64-wow64", None),
        ("wine-9.0-amd64-wow64/bin/wine64", "elf"),
        ("wine-9.0-amd64-wow64/lib/wine/x86_64-unix/ntdll.so", "so"),
    ])
    stage = tmp_path / "stage"
    wine_dir = stage_runtime(archive, str(stage))
    assert wine_dir == str(stage / "wine64")
    assert (stage / "wine64/bin/wine64").read_text() == "elf"
    assert (stage / "wine64/lib/wine/x86_64-unix/ntdll.so").is_file()
    assert not (stage / "wine-9.0-amd64-wow64").exists()


def test_stage_runtime_replaces_previous_wine64(tmp_path):
    archive = _make_tar(tmp_path / "wine-9.0-amd64-wow64.tar.xz", [
        ("wine-9.0-amd64-wow64/bin/wine64", "new"),
    ])
    stage = tmp_path / "stage"
    (stage / "wine64" / "bin").mkdir(parents=True)
    (stage / "wine64" / "stale").write_text("old")
    stage_runtime(archive, str(stage))
    assert not (stage / "wine64" / "stale").exists()
    assert (stage / "wine64/bin/wine64").read_text() == "new"


def test_stage_runtime_missing_runtime_dir_is_fatal(tmp_path, capsys):
    archive = _make_tar(tmp_path / "wine-9.0-amd64-wow64.tar.xz", [
        ("something-else/bin/wine64", "elf"),
    ])
    with pytest.raises(SystemExit) as exc:
        stage_runtime(archive, str(tmp_path / "stage"))
    assert exc.value.code == 1
    assert "wine-*amd64-wow64" in capsys.readouterr().err


def test_find_runtime_dir_ignores_files(tmp_path):
    (tmp_path / "wine-1-amd64-wow64").write_text("not a dir")
    (tmp_path / "wine-2-amd64-wow64").mkdir()
    assert find_runtime_dir(str(tmp_path)) == str(tmp_path / "wine-2-amd64-wow64")


def test_extract_rejects_path_traversal(tmp_path, capsys):
    archive = _make_tar(tmp_path / "evil.tar.xz", [("../escape", "x")])
    out = tmp_path / "out"
    out.mkdir()
    with pytest.raises(SystemExit):
        extract_tar_native(archive, str(out), "r:xz")
    assert not (tmp_path / "escape").exists()
    assert "path traversal" in capsys.readouterr().err


def test_extract_accepts_dot_prefixed_members(tmp_path):
    archive = _make_tar(tmp_path / "dot.tar", [
        (".", None),
        ("./wine-9.0-amd64-wow64/bin/wine64", "elf"),
    ], mode="w")
    out = tmp_path / "out"
    out.mkdir()
    extract_tar_native(archive, str(out), "r:")
    assert os.path.isfile(out / "wine-9.0-amd64-wow64/bin/wine64")


def test_extract_rejects_member_behind_escaping_symlink(tmp_path, capsys):
    archive = tmp_path / "link.tar"
    with tarfile.open(archive, "w") as tf:
        link = tarfile.TarInfo("up")
        link.type = tarfile.SYMTYPE
        link.linkname = ".."
        tf.addfile(link)
        data = b"x"
        info = tarfile.TarInfo("up/escape")
        info.size = len(data)
        tf.addfile(info, io.BytesIO(data))
    out = tmp_path / "out"
    out.mkdir()
    with pytest.raises(SystemExit) as exc:
        extract_tar_native(str(archive), str(out), "r:")
    assert exc.value.code == 1
    assert not (tmp_path / "escape").exists()
    assert "error: unsafe archive member up/escape" in capsys.readouterr().err
