from __future__ import annotations

import os

import pytest

from file_catalog import (
    copy_log_file,
    count_entries,
    describe_log_file,
    find_log_file,
    format_file_size,
    list_log_files,
)


def _write(path, lines, mtime):
    path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
    os.utime(path, (mtime, mtime))


@pytest.fixture
def log_dir(tmp_path):
    _write(
        tmp_path / "arduino_logs_2024-01-01.csv",
        ["Timestamp,A,B", "t1,1,2", "t2,3,4", "t3,5,6"],
        1_700_000_000,
    )
    _write(tmp_path / "arduino_logs_2024-01-02.csv", ["Timestamp,A,B"], 1_700_100_000)
    _write(tmp_path / "notes.csv", ["x", "y"], 1_700_200_000)
    _write(tmp_path / "arduino_logs_2024-01-03.txt", ["x"], 1_700_300_000)
    return tmp_path


def test_list_log_files_newest_first(log_dir):
    files = list_log_files(log_dir)
    assert [f.name for f in files] == ["arduino_logs_2024-01-02.csv", "arduino_logs_2024-01-01.csv"]
    assert [f.entries for f in files] == [0, 3]
    assert files[1].size == (log_dir / "arduino_logs_2024-01-01.csv").stat().st_size
    assert files[0].full_path == log_dir / "arduino_logs_2024-01-02.csv"


def test_missing_directory_yields_empty_list(tmp_path):
    assert list_log_files(tmp_path / "nope") == []


def test_count_entries_ignores_blank_lines(tmp_path):
    path = tmp_path / "arduino_logs_2024-02-01.csv"
    path.write_text("Timestamp,A\n\n1,2\n   \n3,4\n", encoding="utf-8")
    assert count_entries(path) == 2

    empty = tmp_path / "arduino_logs_2024-02-02.csv"
    empty.write_text("", encoding="utf-8")
    assert count_entries(empty) == 0


def test_describe_and_find(log_dir):
    assert describe_log_file(log_dir / "missing.csv") is None
    info = find_log_file(log_dir, "arduino_logs_2024-01-01.csv")
    assert info is not None and info.entries == 3
    assert find_log_file(log_dir, "notes.csv") is None


def test_copy_log_file(log_dir, tmp_path):
    source = log_dir / "arduino_logs_2024-01-01.csv"
    dest = tmp_path / "export.csv"
    result = copy_log_file(source, dest)
    assert result.success
    assert result.file_path == str(dest)
    assert result.original_file == source.name
    assert dest.read_text(encoding="utf-8") == source.read_text(encoding="utf-8")


def test_copy_log_file_failure(tmp_path):
    result = copy_log_file(tmp_path / "missing.csv", tmp_path / "out.csv")
    assert not result.success
    assert result.error


@pytest.mark.parametrize(
    "size,expected",
    [(0, "0 Bytes"), (512, "512 Bytes"), (1024, "1 KB"), (1536, "1.5 KB"), (5 * 1024 ** 2, "5 MB"), (1024 ** 4, "1024 GB")],
)
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected
