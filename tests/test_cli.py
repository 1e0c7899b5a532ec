from __future__ import annotations

import json
import os

import pytest

from swft.cli import main
from swft.files import read_all_bytes, resolve_destination, write_all_bytes


def test_send_requires_four_positionals(capsys):
    with pytest.raises(SystemExit) as exc_info:
        main(["send", "localhost", "9000", "src.bin"])
    assert exc_info.value.code != 0
    assert "usage" in capsys.readouterr().err


def test_send_missing_source_exits_nonzero(tmp_path):
    missing = str(tmp_path / "nope.bin")
    assert main(["send", "127.0.0.1", "9", missing, "out.bin"]) == 1


def test_bench_prints_json(capsys):
    assert main(["bench", "--size-bytes", "5000", "--seed", "1", "--json"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["role"] == "bench"
    assert payload["bytes_transferred"] == 5000


def test_write_all_bytes_creates_directories(tmp_path):
    target = write_all_bytes(str(tmp_path), "out/copy.bin", b"hello")
    assert target == os.path.join(os.path.realpath(tmp_path), "out", "copy.bin")
    assert read_all_bytes(target) == b"hello"


def test_absolute_destination_lands_under_root(tmp_path):
    target = resolve_destination(str(tmp_path), "/etc/passwd")
    assert target.startswith(os.path.realpath(tmp_path))


@pytest.mark.parametrize("dest", ["../escape.bin", "a/../../escape.bin", ""])
def test_destination_may_not_escape_root(tmp_path, dest):
    with pytest.raises(ValueError):
        resolve_destination(str(tmp_path), dest)
