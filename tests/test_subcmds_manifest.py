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

"""Unittests for the manifest subcmd."""

import io
import json
import os
from pathlib import Path
from unittest import mock

import pytest

import subcmds


MANIFEST = """
<manifest>
  <remote name="origin" fetch="https://example.com" />
  <default remote="origin" revision="main" />
  <include name="more.xml" />
  <project name="a" />
</manifest>
"""


@pytest.fixture
def manifest_file(tmp_path: Path) -> str:
    (tmp_path / "more.xml").write_text(
        '<manifest><project name="included"/></manifest>'
    )
    overlays = tmp_path / ".repo" / "local_manifests"
    overlays.mkdir(parents=True)
    (overlays / "local.xml").write_text(
        '<manifest><project name="local"/></manifest>'
    )
    path = tmp_path / "manifest.xml"
    path.write_text(MANIFEST)
    return str(path)


def _run(argv):
    cmd = subcmds.all_commands["manifest"]()
    opts, args = cmd.OptionParser.parse_args(argv)
    cmd.CommonValidateOptions(opts, args)
    cmd.ValidateOptions(opts, args)
    with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
        cmd.Execute(opts, args)
    return stdout.getvalue()


def test_json(manifest_file: str) -> None:
    """Includes are expanded and overlays merged."""
    data = json.loads(_run(["-m", manifest_file, "--format=json"]))
    assert [p["name"] for p in data["project"]] == ["included", "a", "local"]
    assert data["default"] == {"remote": "origin", "revision": "main"}


def test_no_local_manifests(manifest_file: str) -> None:
    data = json.loads(
        _run(["-m", manifest_file, "--format=json", "--no-local-manifests"])
    )
    assert [p["name"] for p in data["project"]] == ["included", "a"]


def test_pretty_json(manifest_file: str) -> None:
    output = _run(["-m", manifest_file, "--format=json", "--pretty"])
    assert output.startswith("{\n  ")


def test_xml(manifest_file: str) -> None:
    output = _run(["-m", manifest_file])
    assert '<project name="local"/>' in output
    assert "<include" not in output


def test_output_file(manifest_file: str, tmp_path: Path) -> None:
    out = tmp_path / "out.xml"
    assert _run(["-m", manifest_file, "-o", str(out)]) == ""
    assert '<project name="a"/>' in out.read_text()
    assert os.path.isfile(out)
