# Copyright (C) 2008 The Android Open Source Project
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

import optparse
import os
import sys

from error import NoSuchProjectError
import manifest_loader
from manifest_xml import MANIFEST_FILE_NAME
from repo_logging import SetVerbosity


class Command:
    """Base class for any command line action in msync."""

    # Whether this command is a "common" one, i.e. whether the user would
    # commonly use it or it's a more uncommon command.
    COMMON = False

    # Whether this command supports running in parallel.  If not None, a
    # -j/--jobs option is added.
    PARALLEL_JOBS = None

    def __init__(self, manifest=None):
        self.manifest = manifest

        # Cache for the OptionParser property.
        self._optparse = None

    def ReadEnvironmentOptions(self, opts):
        """Set options from environment variables."""

        env_options = self._RegisteredEnvironmentOptions()

        for env_key, opt_key in env_options.items():
            # Get the user-set option value if any
            opt_value = getattr(opts, opt_key)

            # If the value is set, it means the user has passed it as a command
            # line option, and we should use that.  Otherwise we can try to set
            # it with the value from the corresponding environment variable.
            if opt_value is not None:
                continue

            env_value = os.environ.get(env_key)
            if env_value is not None:
                setattr(opts, opt_key, env_value)

        return opts

    @property
    def OptionParser(self):
        if self._optparse is None:
            try:
                me = f"msync {self.NAME}"
                usage = self.helpUsage.strip().replace("%prog", me)
            except AttributeError:
                usage = f"msync {self.NAME}"
            self._optparse = optparse.OptionParser(usage=usage)
            self._CommonOptions(self._optparse)
            self._Options(self._optparse)
        return self._optparse

    def _CommonOptions(self, p, opt_v=True):
        """Initialize the option parser with common options.

        These will show up for *all* subcommands, so use sparingly.
        """
        g = p.add_option_group("Logging options")
        opts = ["-v"] if opt_v else []
        g.add_option(
            *opts,
            "--verbose",
            dest="output_mode",
            action="store_true",
            help="show all output",
        )
        g.add_option(
            "-q",
            "--quiet",
            dest="output_mode",
            action="store_false",
            help="only show errors",
        )

        if self.PARALLEL_JOBS is not None:
            p.add_option(
                "-j",
                "--jobs",
                type=int,
                default=None,
                help="number of jobs to run in parallel "
                "(default: the manifest's sync-j, at most 4)",
            )

        m = p.add_option_group("Manifest options")
        m.add_option(
            "-m",
            "--manifest-file",
            default=MANIFEST_FILE_NAME,
            metavar="MANIFEST",
            help="manifest file to load (default: %default)",
        )
        m.add_option(
            "--local-manifests",
            default=None,
            metavar="DIR",
            help="directory of local overlay manifests "
            "(default: .repo/local_manifests next to the manifest)",
        )

    def _Options(self, p):
        """Initialize the option parser with subcommand-specific options."""

    def _RegisteredEnvironmentOptions(self):
        """Get options that can be set from environment variables.

        Return a dictionary mapping environment variable name
        to option key name that it can override.

        Example: {'MSYNC_MY_OPTION': 'my_option'}

        Will allow the option with key value 'my_option' to be set
        from the value in the environment variable named 'MSYNC_MY_OPTION'.

        Note: This does not work properly for options that are explicitly
        set to None by the user, or options that are defined with a
        default value other than None.
        """
        return {"MSYNC_LOCAL_MANIFESTS": "local_manifests"}

    def Usage(self):
        """Display usage and terminate."""
        self.OptionParser.print_usage()
        sys.exit(1)

    def CommonValidateOptions(self, opt, args):
        """Validate common options."""
        opt.quiet = opt.output_mode is False
        opt.verbose = opt.output_mode is True
        SetVerbosity(quiet=opt.quiet, verbose=opt.verbose)

    def ValidateOptions(self, opt, args):
        """Validate the user options & arguments before executing.

        This is meant to help break the code up into logical steps.  Some tips:
        * Use self.OptionParser.error to display CLI related errors.
        * Adjust opt member defaults as makes sense.
        * Adjust the args list, but do so inplace so the caller sees updates.
        * Try to avoid updating self state.  Leave that to Execute.
        """

    def Execute(self, opt, args):
        """Perform the action, after option parsing is complete."""
        raise NotImplementedError

    def GetManifest(self, opt):
        """The effective manifest: the main file plus local overlays."""
        if self.manifest is None:
            self.manifest = manifest_loader.GetManifest(
                opt.manifest_file, local_manifests=opt.local_manifests
            )
        return self.manifest

    @staticmethod
    def GetProjects(manifest, args):
        """A list of projects that match the arguments.

        Args:
            manifest: The XmlManifest to search.
            args: Project names or paths.  Empty means every project.

        Returns:
            A list of matching Project instances, in manifest order.

        Raises:
            NoSuchProjectError: An argument matches no project.
        """
        if not args:
            return list(manifest.projects)

        wanted = set()
        for arg in args:
            arg = arg.rstrip("/")
            matches = [
                p
                for p in manifest.projects
                if arg in (p.name, p.relpath)
            ]
            if not matches:
                raise NoSuchProjectError(arg)
            wanted.update(id(p) for p in matches)
        return [p for p in manifest.projects if id(p) in wanted]
