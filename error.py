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

from typing import List


class BaseRepoError(Exception):
    """All msync specific exceptions derive from BaseRepoError."""


class RepoError(BaseRepoError):
    """Exceptions thrown inside msync that can be handled."""

    def __init__(self, *args, project: str = None) -> None:
        super().__init__(*args)
        self.project = project


class RepoExitError(BaseRepoError):
    """Exception thrown that result in termination of the msync program.
    - Should only be handled in main.py
    """

    def __init__(
        self,
        *args,
        exit_code: int = 1,
        aggregate_errors: List[Exception] = None,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.exit_code = exit_code
        self.aggregate_errors = aggregate_errors


class ManifestParseError(RepoExitError):
    """Failed to parse the manifest file."""


class ManifestSchemaError(ManifestParseError):
    """A manifest element is missing a required attribute."""


class ManifestInvalidPathError(ManifestParseError):
    """A path used in <project>, <copyfile> or <linkfile> is incorrect."""


class ManifestIncludeError(ManifestParseError):
    """An <include> could not be loaded."""


class IncludeCycleError(ManifestIncludeError):
    """An <include> chain leads back to a manifest still being loaded."""

    def __init__(self, chain, **kwargs):
        super().__init__(chain, **kwargs)
        self.chain = chain

    def __str__(self):
        return "include cycle detected: %s" % " -> ".join(self.chain)


class RemoteNotFoundError(RepoError):
    """A project refers to a remote the manifest does not define."""

    def __init__(self, name, **kwargs):
        super().__init__(name, **kwargs)
        self.name = name

    def __str__(self):
        return f"Remote '{self.name}' not found in manifest"


class RevisionUnresolvedError(RepoError):
    """Neither the project nor the default element provide a revision."""

    def __init__(self, has_default, **kwargs):
        super().__init__(has_default, **kwargs)
        self.has_default = has_default

    def __str__(self):
        if not self.has_default:
            return (
                "Default element is missing and project does not specify a "
                "revision"
            )
        return (
            "Default element does not specify a revision and project does "
            "not specify a revision"
        )


class PathContainmentError(RepoError):
    """A <copyfile> or <linkfile> path resolves outside the target tree."""

    def __init__(self, path, root, **kwargs):
        super().__init__(path, root, **kwargs)
        self.path = path
        self.root = root

    def __str__(self):
        return f"{self.path}: path is outside the target directory {self.root}"


class FileStateError(RepoError):
    """A file on disk is missing or has the wrong type."""

    def __init__(self, reason, **kwargs):
        super().__init__(reason, **kwargs)
        self.reason = reason

    def __str__(self):
        return self.reason


class GitError(RepoError):
    """Unspecified git related error."""

    def __init__(self, message, command_args=None, **kwargs):
        super().__init__(message, **kwargs)
        self.message = message
        self.command_args = command_args

    def __str__(self):
        return self.message


class SyncProjectError(RepoError):
    """A single project could not be synced."""

    def __init__(self, reason, **kwargs):
        super().__init__(reason, **kwargs)
        self.reason = reason

    def __str__(self):
        return self.reason


class InvalidArgumentsError(RepoExitError):
    """Invalid command Arguments."""


class SyncError(RepoExitError):
    """Cannot sync the checkout tree."""


class NoSuchProjectError(RepoExitError):
    """A project named on the command line is not in the manifest."""

    def __init__(self, name=None, **kwargs):
        super().__init__(**kwargs)
        self.name = name

    def __str__(self):
        if self.name is None:
            return "no project given"
        return f"project {self.name} not found in manifest"
