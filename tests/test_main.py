# Copyright (C) 2024 The Android Open Source Project
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Unittests for the main.py module."""

from pathlib import Path
from unittest import mock

import pytest

import main


@pytest.mark.parametrize(
    "argv, name, rest",
    [
        ([], None, []),
        (["sync"], "sync", []),
        (["--color=never", "sync", "-j2", "a"], "sync", ["-j2", "a"]),
        (["--time"], None, []),
    ],
)
def test_parse_args(argv, name, rest):
    got_name, gopts, got_rest = main._Msync()._ParseArgs(argv)
    assert got_name == name
    assert got_rest == rest


def test_help(capsys):
    assert main._Main(["--help"]) == 0
    out = capsys.readouterr().out
    assert "sync" in out
    assert "manifest" in out


def test_no_command():
    with mock.patch.object(main._Msync, "_PrintHelp"):
        assert main._Main([]) == 1


def test_unknown_command():
    assert main._Main(["frobnicate"]) == 1


def test_bad_manifest(tmp_path: Path):
    manifest = tmp_path / "manifest.xml"
    manifest.write_text("<manifest><remote name='r'/></manifest>")
    assert main._Main(["list", "-m", str(manifest)]) == 1


def test_missing_manifest(tmp_path: Path):
    assert main._Main(["list", "-m", str(tmp_path / "missing.xml")]) == 1


def test_sync_failure_exit_code(tmp_path: Path):
    """A failed project makes the whole run exit non-zero."""
    manifest = tmp_path / "manifest.xml"
    manifest.write_text(
        "<manifest>"
        "<remote name='origin' fetch='file:///nonexistent' />"
        "<project name='a' />"
        "</manifest>"
    )
    with mock.patch("project.RunGit", return_value=1):
        rc = main._Main(
            ["sync", "-q", "-m", str(manifest), "-t", str(tmp_path / "top")]
        )
    assert rc == 1


def test_list(tmp_path: Path, capsys):
    manifest = tmp_path / "manifest.xml"
    manifest.write_text("<manifest><project name='a' path='x'/></manifest>")
    assert main._Main(["list", "-m", str(manifest)]) == 0
    assert capsys.readouterr().out == "x : a\n"
