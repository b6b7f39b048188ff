# Copyright (C) 2011 The Android Open Source Project
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

import os

from command import Command
from project import ResolveProject


class List(Command):
    COMMON = True
    helpSummary = "List projects and their associated directories"
    helpUsage = """
%prog [-n|-p|-u] [<project>...]
"""
    helpDescription = """
List the projects of the effective manifest (the manifest plus its local
overlays) and the directories they are checked out to.
"""

    def _Options(self, p):
        p.add_option(
            "-n",
            "--name-only",
            action="store_true",
            help="display only the name of the repository",
        )
        p.add_option(
            "-p",
            "--path-only",
            action="store_true",
            help="display only the path of the repository",
        )
        p.add_option(
            "-u",
            "--url",
            action="store_true",
            help="also display the resolved url and revision",
        )
        p.add_option(
            "-f",
            "--fullpath",
            action="store_true",
            help="display the full work tree path instead of the relative path",
        )
        p.add_option(
            "-t",
            "--target",
            dest="target_dir",
            metavar="TARGET",
            help="top of the checkout tree used by --fullpath "
            "(default: current directory)",
        )

    def ValidateOptions(self, opt, args):
        if opt.fullpath and opt.name_only:
            self.OptionParser.error("cannot combine -f and -n")
        if opt.name_only and opt.path_only:
            self.OptionParser.error("cannot combine -n and -p")
        if opt.target_dir is None:
            opt.target_dir = os.getcwd()

    def Execute(self, opt, args):
        """List all projects and the associated directories.

        Args:
            opt: The options.
            args: Positional args.  Can be a list of projects to list, or empty.
        """
        manifest = self.GetManifest(opt)
        projects = self.GetProjects(manifest, args)

        def _getpath(x):
            if opt.fullpath:
                return x.Worktree(os.path.abspath(opt.target_dir))
            return x.relpath

        lines = []
        for project in projects:
            if opt.name_only:
                line = project.name
            elif opt.path_only:
                line = _getpath(project)
            else:
                line = f"{_getpath(project)} : {project.name}"
            if opt.url:
                resolved = ResolveProject(project, manifest)
                line += f" : {resolved.url} @ {resolved.revision}"
            lines.append(line)

        if lines:
            lines.sort()
            print("\n".join(lines))
