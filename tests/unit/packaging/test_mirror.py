"""Unit tests for the Filesystem Mirror."""

import os
from unittest.mock import patch

import pytest

from packsmith.build.mirror import FileMirror
from packsmith.utils.exceptions import FileError


@pytest.fixture
def mirror(logger_manager):
    return FileMirror(logger_manager)


@pytest.fixture
def source_dir(tmp_path):
    source = tmp_path / "src"
    (source / "sub").mkdir(parents=True)
    (source / "a.txt").write_text("alpha")
    (source / "sub" / "b.txt").write_bytes(b"\x00\x01binary\xff")
    return source


@pytest.mark.asyncio
async def test_mirror_merges_into_existing_destination(mirror, source_dir, tmp_path):
    """Test that mirroring adds entries and keeps what was already there."""
    dest = tmp_path / "dest"
    dest.mkdir()
    (dest / "old.txt").write_text("keep me")

    stats = await mirror.mirror(source_dir, dest)

    assert (dest / "a.txt").read_text() == "alpha"
    assert (dest / "sub" / "b.txt").read_bytes() == b"\x00\x01binary\xff"
    assert (dest / "old.txt").read_text() == "keep me"
    assert stats.files_copied == 2
    assert stats.bytes_copied == len("alpha") + len(b"\x00\x01binary\xff")
    assert sorted(os.listdir(dest)) == ["a.txt", "old.txt", "sub"]


@pytest.mark.asyncio
async def test_mirror_again_updates_changed_file(mirror, source_dir, tmp_path):
    """Test that a second mirror overwrites changed files and leaves the rest alone."""
    dest = tmp_path / "dest"
    await mirror.mirror(source_dir, dest)
    (dest / "old.txt").write_text("keep me")

    (source_dir / "a.txt").write_text("alpha, edited")
    await mirror.mirror(source_dir, dest)

    assert (dest / "a.txt").read_text() == "alpha, edited"
    assert (dest / "sub" / "b.txt").read_bytes() == b"\x00\x01binary\xff"
    assert (dest / "old.txt").read_text() == "keep me"
    assert not any(name.endswith(".tmp") for name in os.listdir(dest))


@pytest.mark.asyncio
async def test_mirror_creates_intermediate_directories(mirror, source_dir, tmp_path):
    """Test that missing destination parents are created."""
    dest = tmp_path / "deep" / "er" / "dest"

    stats = await mirror.mirror(source_dir, dest)

    assert (dest / "sub" / "b.txt").exists()
    assert stats.directories_created >= 2


@pytest.mark.asyncio
async def test_mirror_single_file(mirror, source_dir, tmp_path):
    """Test copying a file source onto a file destination."""
    dest = tmp_path / "out" / "renamed.txt"
    dest.parent.mkdir()
    dest.write_text("stale")

    stats = await mirror.mirror(source_dir / "a.txt", dest)

    assert dest.read_text() == "alpha"
    assert stats.files_copied == 1


@pytest.mark.asyncio
async def test_missing_source_warns(mirror, logger_manager, tmp_path):
    """Test that a missing source copies nothing and is reported as a warning."""
    dest = tmp_path / "dest"

    stats = await mirror.mirror(tmp_path / "missing", dest)

    assert stats.source_missing
    assert stats.files_copied == 0
    assert not dest.exists()
    logger = logger_manager.get_logger.return_value
    logger.warning.assert_called_once()
    assert "missing" in logger.warning.call_args[0][0]


@pytest.mark.asyncio
async def test_deep_tree(mirror, tmp_path):
    """Test a tree deeper than a recursive walk would comfortably handle."""
    source = tmp_path / "src"
    current = source
    for _ in range(60):
        current = current / "d"
    current.mkdir(parents=True)
    (current / "leaf.txt").write_text("bottom")

    await mirror.mirror(source, tmp_path / "dest")

    copied = tmp_path / "dest" / os.path.relpath(current / "leaf.txt", source)
    assert copied.read_text() == "bottom"


@pytest.mark.asyncio
@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks not supported")
async def test_symlink_loop_is_visited_once(mirror, source_dir, tmp_path):
    """Test that a directory symlink pointing back up the tree does not loop."""
    try:
        os.symlink(source_dir, source_dir / "sub" / "loop", target_is_directory=True)
    except OSError:
        pytest.skip("cannot create symlinks here")

    stats = await mirror.mirror(source_dir, tmp_path / "dest")

    assert stats.skipped_links == 1
    assert (tmp_path / "dest" / "a.txt").exists()


@pytest.mark.asyncio
async def test_write_failure_raises_file_error(mirror, source_dir, tmp_path):
    """Test that a failing write surfaces as FileError with the destination path."""
    dest = tmp_path / "dest"

    with patch("packsmith.build.mirror.aiofiles.os.replace", side_effect=OSError(28, "No space left on device")):
        with pytest.raises(FileError) as exc_info:
            await mirror.mirror(source_dir / "a.txt", dest / "a.txt")

    assert exc_info.value.file_path == str(dest / "a.txt")
    assert "No space left on device" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, OSError)
    assert not (dest / "a.txt").exists()
    assert os.listdir(dest) == []


@pytest.mark.asyncio
async def test_files_named_like_temporaries_are_left_alone(mirror, tmp_path):
    """Test that copying x never touches an unrelated x.tmp in source or destination."""
    source = tmp_path / "src"
    source.mkdir()
    (source / "a.txt").write_text("alpha")
    (source / "b.txt").write_text("bravo")
    (source / "b.txt.tmp").write_text("bravo backup")
    dest = tmp_path / "dest"
    dest.mkdir()
    (dest / "a.txt.tmp").write_text("user data")

    stats = await mirror.mirror(source, dest)

    assert stats.files_copied == 3
    assert (dest / "a.txt").read_text() == "alpha"
    assert (dest / "a.txt.tmp").read_text() == "user data"
    assert (dest / "b.txt").read_text() == "bravo"
    assert (dest / "b.txt.tmp").read_text() == "bravo backup"
    assert sorted(os.listdir(dest)) == ["a.txt", "a.txt.tmp", "b.txt", "b.txt.tmp"]
