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

"""The version-control backend: runs git in a project's working directory."""

import functools
import os
import re
import subprocess

from error import GitError
from repo_logging import RepoLogger


GIT = "git"
GIT_DIR = "GIT_DIR"

DEFAULT_GIT_FAIL_MESSAGE = "git command failure"
# Common line length limit
GIT_ERROR_STDOUT_LINES = 1
GIT_ERROR_STDERR_LINES = 10

logger = RepoLogger(__file__)


def _build_env():
    """Constucts an env dict for command execution."""
    env = GitCommand._GetBasicEnv()

    # Never block a worker on an interactive prompt.
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_EDITOR"] = ":"
    if "GIT_ALLOW_PROTOCOL" not in env:
        env[
            "GIT_ALLOW_PROTOCOL"
        ] = "file:git:http:https:ssh:persistent-http:persistent-https:sso:rpc"
    return env


class GitCommand:
    """Wrapper around a single git invocation with its output captured."""

    def __init__(self, project, cmdv, cwd=None):
        self.project = project
        self.cmdv = cmdv
        self.stdout, self.stderr = None, None

        command = [GIT]
        command.extend(cmdv)

        self._RunCommand(command, _build_env(), cwd=cwd)

    def _RunCommand(self, command, env, cwd=None):
        logger.debug(": cd %s && %s", cwd or os.getcwd(), " ".join(command))
        try:
            p = subprocess.Popen(
                command,
                cwd=cwd,
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                encoding="utf-8",
                errors="backslashreplace",
            )
        except Exception as e:
            raise GitPopenCommandError(
                message=f"{command[1]}: {e}",
                project=self.project.name if self.project else None,
                command_args=self.cmdv,
            )

        self.process = p
        self.stdout, self.stderr = p.communicate()
        self.rc = p.wait()

    @staticmethod
    def _GetBasicEnv():
        """Return a basic env for running git under.

        This is guaranteed to be side-effect free.
        """
        env = os.environ.copy()
        for key in (
            GIT_DIR,
            "GIT_ALTERNATE_OBJECT_DIRECTORIES",
            "GIT_OBJECT_DIRECTORY",
            "GIT_WORK_TREE",
            "GIT_GRAFT_FILE",
            "GIT_INDEX_FILE",
        ):
            env.pop(key, None)
        return env

    def VerifyCommand(self):
        if self.rc == 0:
            return None
        stdout = (
            "\n".join(self.stdout.split("\n")[:GIT_ERROR_STDOUT_LINES])
            if self.stdout
            else None
        )
        stderr = (
            "\n".join(self.stderr.split("\n")[:GIT_ERROR_STDERR_LINES])
            if self.stderr
            else None
        )
        project = self.project.name if self.project else None
        raise GitCommandError(
            project=project,
            command_args=self.cmdv,
            git_rc=self.rc,
            git_stdout=stdout,
            git_stderr=stderr,
        )

    def Wait(self):
        self.VerifyCommand()
        return self.rc


def RunGit(cwd, cmdv, project=None):
    """Default version-control backend.

    Runs `git <cmdv>` inside |cwd| with its output captured, so parallel
    workers do not interleave on the terminal.

    Args:
        cwd: The working directory of the project.
        cmdv: The git arguments, e.g. ["fetch", "origin", "main"].
        project: The Project on whose behalf git runs, for error reporting.

    Returns:
        The exit status of git (always 0; failures raise).

    Raises:
        GitCommandError: git exited with a non-zero status.
        GitPopenCommandError: git could not be started.
    """
    return GitCommand(project, cmdv, cwd=cwd).Wait()


class GitCommandError(GitError):
    """
    Error raised from a failed git command.
    Note that GitError can refer to any Git related error, while
    GitCommandError is raised exclusively from non-zero exit codes returned
    from git commands.
    """

    # Tuples with error formats and suggestions for those errors.
    _ERROR_TO_SUGGESTION = [
        (
            re.compile("couldn't find remote ref .*"),
            "Check if the provided ref exists in the remote.",
        ),
        (
            re.compile("unable to access '.*': .*"),
            (
                "Please make sure you have the correct access rights and the "
                "repository exists."
            ),
        ),
        (
            re.compile("'.*' does not appear to be a git repository"),
            "Check the fetch url of the project's remote in the manifest.",
        ),
    ]

    def __init__(
        self,
        message: str = DEFAULT_GIT_FAIL_MESSAGE,
        git_rc: int = None,
        git_stdout: str = None,
        git_stderr: str = None,
        **kwargs,
    ):
        super().__init__(
            message,
            **kwargs,
        )
        self.git_rc = git_rc
        self.git_stdout = git_stdout
        self.git_stderr = git_stderr

    @property
    @functools.lru_cache(maxsize=None)
    def suggestion(self):
        """Returns helpful next steps for the given stderr."""
        if not self.git_stderr:
            return self.git_stderr

        for err, suggestion in self._ERROR_TO_SUGGESTION:
            if err.search(self.git_stderr):
                return suggestion

        return None

    def __str__(self):
        args = "[]" if not self.command_args else " ".join(self.command_args)
        error_type = type(self).__name__
        string = f"{error_type}: '{args}' on {self.project} failed"

        if self.message != DEFAULT_GIT_FAIL_MESSAGE:
            string += f": {self.message}"

        if self.git_rc is not None:
            string += f" (exit status {self.git_rc})"

        if self.git_stdout:
            string += f"\nstdout: {self.git_stdout}"

        if self.git_stderr:
            string += f"\nstderr: {self.git_stderr}"

        if self.suggestion:
            string += f"\nsuggestion: {self.suggestion}"

        return string


class GitPopenCommandError(GitError):
    """
    Error raised when subprocess.Popen fails for a GitCommand
    """
