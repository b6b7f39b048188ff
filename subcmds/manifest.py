# Copyright (C) 2009 The Android Open Source Project
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

import enum
import json
import os
import sys

from command import Command
import manifest_loader
from repo_logging import RepoLogger


logger = RepoLogger(__file__)


class OutputFormat(enum.Enum):
    """Type for the requested output format."""

    # Canonicalized manifest in XML format.
    XML = enum.auto()

    # Canonicalized manifest in JSON format.
    JSON = enum.auto()


class Manifest(Command):
    COMMON = False
    helpSummary = "Manifest inspection utility"
    helpUsage = """
%prog [-o {-|NAME.xml}] [-m MANIFEST.xml]
"""
    helpDescription = """
Exports the effective manifest for inspection.  The manifest and (if
present) its local overlays are combined together to produce a single
manifest, with every <include> expanded.
"""

    def _Options(self, p):
        formats = tuple(x.lower() for x in OutputFormat.__members__.keys())
        p.add_option(
            "--format",
            default=OutputFormat.XML.name.lower(),
            choices=formats,
            help=f"output format: {', '.join(formats)} (default: %default)",
        )
        p.add_option(
            "--pretty",
            default=False,
            action="store_true",
            help="format output for humans to read",
        )
        p.add_option(
            "--no-local-manifests",
            default=False,
            action="store_true",
            dest="ignore_local_manifests",
            help="ignore local manifests",
        )
        p.add_option(
            "-o",
            "--output-file",
            default="-",
            help="file to save the manifest to",
            metavar="-|NAME.xml",
        )

    def _LoadManifest(self, opt):
        if opt.ignore_local_manifests:
            return manifest_loader.ParseManifest(opt.manifest_file)
        return self.GetManifest(opt)

    def _Write(self, opt, manifest, fd):
        output_format = OutputFormat[opt.format.upper()]
        if output_format == OutputFormat.JSON:
            json_settings = {
                # JSON style guide says Unicode characters are fully allowed.
                "ensure_ascii": False,
                # We use 2 space indent to match JSON style guide.
                "indent": 2 if opt.pretty else None,
                "separators": (",", ": ") if opt.pretty else (",", ":"),
                "sort_keys": True,
            }
            fd.write(json.dumps(manifest.ToDict(), **json_settings) + "\n")
        else:
            manifest.Save(fd)

    def ValidateOptions(self, opt, args):
        if args:
            self.Usage()

    def Execute(self, opt, args):
        manifest = self._LoadManifest(opt)
        if opt.output_file == "-":
            self._Write(opt, manifest, sys.stdout)
            return

        with open(opt.output_file, "w") as fd:
            self._Write(opt, manifest, fd)
        logger.warning(
            "Saved manifest to %s", os.path.abspath(opt.output_file)
        )
