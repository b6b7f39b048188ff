#!/usr/bin/env python3
#
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

"""The msync tool.

Loads a manifest (plus local overlays) and drives the subcommands in
subcmds/ against it.
"""

import optparse
import signal
import sys
import time

from color import SetDefaultColoring
from error import ManifestParseError
from error import NoSuchProjectError
from error import RepoError
from error import RepoExitError
from repo_logging import RepoLogger
from subcmds import all_commands


logger = RepoLogger(__file__)


KEYBOARD_INTERRUPT_EXIT = 128 + signal.SIGINT

global_options = optparse.OptionParser(
    usage="msync [--color=auto|always|never] COMMAND [ARGS]",
    add_help_option=False,
)
global_options.add_option(
    "-h", "--help", action="store_true", help="show this help message and exit"
)
global_options.add_option(
    "--color",
    choices=("auto", "always", "never"),
    default=None,
    help="control color usage: auto, always, never",
)
global_options.add_option(
    "--time",
    dest="time",
    action="store_true",
    help="time msync command execution",
)


class _Msync:
    def __init__(self):
        self.commands = all_commands

    def _PrintHelp(self):
        """Show --help screen."""
        global_options.print_help()
        print()
        print("Available commands:")
        width = max(len(name) for name in self.commands)
        for name in sorted(self.commands):
            summary = getattr(self.commands[name], "helpSummary", "")
            print(f"  {name:<{width}}  {summary}")
        print("\nRun `msync <command> --help` for command-specific details.")

    def _ParseArgs(self, argv):
        """Parse the main `msync` command line options."""
        for i, arg in enumerate(argv):
            if not arg.startswith("-"):
                name = arg
                glob = argv[:i]
                argv = argv[i + 1 :]
                break
        else:
            name = None
            glob = argv
            argv = []
        gopts, _gargs = global_options.parse_args(glob)
        return (name, gopts, argv)

    def _Run(self, name, gopts, argv):
        """Execute the requested subcommand."""
        if gopts.help:
            self._PrintHelp()
            return 0
        elif not name:
            # No subcommand specified, so show the help/subcommand.
            self._PrintHelp()
            return 1

        SetDefaultColoring(gopts.color)

        try:
            cmd = self.commands[name]()
        except KeyError:
            logger.error(
                "msync: '%s' is not a msync command.  See 'msync --help'.",
                name,
            )
            return 1

        copts, cargs = cmd.OptionParser.parse_args(argv)
        copts = cmd.ReadEnvironmentOptions(copts)

        start = time.time()
        result = 0
        try:
            cmd.CommonValidateOptions(copts, cargs)
            cmd.ValidateOptions(copts, cargs)
            result = cmd.Execute(copts, cargs) or 0
        except ManifestParseError as e:
            logger.error("error: in `%s`: %s", " ".join([name] + argv), e)
            result = e.exit_code
        except NoSuchProjectError as e:
            logger.error("error: %s", e)
            result = e.exit_code
        except RepoError as e:
            # Errors tied to one project that reached the top unaggregated.
            if e.project:
                logger.error("error: %s: %s", e.project, e)
            else:
                logger.error("error: %s", e)
            result = 1
        except OSError as e:
            logger.error("error: in `%s`: %s", " ".join([name] + argv), e)
            result = 1
        finally:
            if gopts.time:
                elapsed = time.time() - start
                hours, remainder = divmod(elapsed, 3600)
                minutes, seconds = divmod(remainder, 60)
                if hours == 0:
                    print(
                        "real\t%dm%.3fs" % (minutes, seconds), file=sys.stderr
                    )
                else:
                    print(
                        "real\t%dh%dm%.3fs" % (hours, minutes, seconds),
                        file=sys.stderr,
                    )
        return result


def _Main(argv):
    result = 0
    msync = _Msync()

    try:
        name, gopts, argv = msync._ParseArgs(argv)
        result = msync._Run(name, gopts, argv) or 0
    except RepoExitError as e:
        logger.log_aggregated_errors(e)
        result = e.exit_code
    except KeyboardInterrupt:
        print("aborted by user", file=sys.stderr)
        result = KEYBOARD_INTERRUPT_EXIT

    return result


def main():
    sys.exit(_Main(sys.argv[1:]))


if __name__ == "__main__":
    main()
