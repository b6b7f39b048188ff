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

import filecmp
import os
import re
import shutil
import stat
from typing import NamedTuple

from error import FileStateError
from error import PathContainmentError
from error import RemoteNotFoundError
from error import RevisionUnresolvedError
from error import SyncProjectError
from git_command import GitCommandError
from git_command import RunGit
import platform_utils
from repo_logging import RepoLogger


logger = RepoLogger(__file__)

# Remote name used when neither the project nor <default> names one.
DEFAULT_REMOTE_NAME = "origin"

# Update strategies for checkouts that already exist on disk.
UPDATE_RESET = "reset"
UPDATE_REBASE = "rebase"
UPDATE_STRATEGIES = (UPDATE_RESET, UPDATE_REBASE)

FETCH_HEAD = "FETCH_HEAD"

# Tip of the previous fetch, recorded for rebase updates.
UPSTREAM_REF = "refs/msync/upstream"


class Annotation:
    XML_ATTRS = (("name", "name"), ("value", "value"), ("keep", "keep"))

    def __init__(self, name, value, keep=True):
        self.name = name
        self.value = value
        self.keep = keep

    def __eq__(self, other):
        if not isinstance(other, Annotation):
            return False
        return self.__dict__ == other.__dict__

    def __lt__(self, other):
        # This exists just so that lists of Annotation objects can be sorted,
        # for use in comparisons.
        if not isinstance(other, Annotation):
            raise ValueError("comparison is not between two Annotation objects")
        if self.name == other.name:
            if self.value == other.value:
                return self.keep < other.keep
            return self.value < other.value
        return self.name < other.name

    def __repr__(self):
        return f"Annotation({self.name!r}, {self.value!r}, keep={self.keep!r})"


def _SafeExpandPath(base, subpath, topdir, skipfinal=False):
    """Make sure |subpath| is completely safe under |base|.

    The joined path must stay within |topdir|, and no intermediate symlinks
    may be traversed (a symlink could point anywhere).

    Args:
        base: Absolute directory |subpath| is relative to.
        subpath: The manifest supplied relative path.
        topdir: Absolute path nothing may escape from.
        skipfinal: Whether the caller handles the final component itself.

    Returns:
        The absolute, expanded path.

    Raises:
        PathContainmentError: The path leaves |topdir| or crosses a symlink.
    """
    path = os.path.normpath(os.path.join(base, subpath))
    if not platform_utils.is_within(path, topdir):
        raise PathContainmentError(subpath, topdir)

    # Split up the path by its components.  We can't use os.path.sep
    # exclusively as some platforms (like Windows) will convert / to \ and
    # that bypasses all our constructed logic here.  Especially since manifest
    # authors only use / in their paths.
    resep = re.compile(r"[/%s]" % re.escape(os.path.sep))
    components = [
        x
        for x in resep.split(os.path.relpath(path, base))
        if x and x != "."
    ]
    finalpart = None
    if skipfinal and components:
        finalpart = components.pop()

    path = base
    for part in components:
        path = os.path.join(path, part)
        if platform_utils.islink(path):
            raise PathContainmentError(f"{path}: traversing symlinks", topdir)

    if finalpart is not None:
        path = os.path.join(path, finalpart)

    return path


class _FileDirective:
    """Shared logic for <copyfile> & <linkfile> requests."""

    XML_ATTRS = (("src", "src"), ("dest", "dest"))

    def __init__(self, src, dest, project=None):
        """Register a request.

        Args:
            src: Path relative to the owning project checkout (or to the top
                of the tree when there is no owning project).
            dest: Path relative to the top of the tree.
            project: The owning Project, if any.
        """
        self.src = src
        self.dest = dest
        self.project = project

    def __eq__(self, other):
        if type(self) is not type(other):
            return False
        return (self.src, self.dest) == (other.src, other.dest)

    def __repr__(self):
        return f"{type(self).__name__}({self.src!r}, {self.dest!r})"

    @property
    def project_name(self):
        return self.project.name if self.project else None

    def _SourceBase(self, topdir):
        if self.project is None:
            return topdir
        return self.project.Worktree(topdir)


class CopyFile(_FileDirective):
    """Container for <copyfile> manifest element."""

    def _Copy(self, topdir):
        topdir = os.path.abspath(topdir)
        # Resolve both ends before touching anything.
        src = _SafeExpandPath(self._SourceBase(topdir), self.src, topdir)
        dest = _SafeExpandPath(topdir, self.dest, topdir)

        if not os.path.isfile(src):
            raise FileStateError(
                f"{self.src}: copy source does not exist or is not a file",
                project=self.project_name,
            )
        if platform_utils.isdir(dest):
            raise FileStateError(
                f"{self.dest}: copying to directory not allowed",
                project=self.project_name,
            )

        # Copy file if it does not exist or is out of date.
        if os.path.exists(dest) and filecmp.cmp(src, dest, shallow=False):
            return
        try:
            # Remove existing file first, since it might be read-only.
            if os.path.lexists(dest):
                platform_utils.remove(dest)
            else:
                os.makedirs(os.path.dirname(dest), exist_ok=True)
            shutil.copy(src, dest)
            # Make the file read-only.
            mode = os.stat(dest)[stat.ST_MODE]
            mode = mode & ~(stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH)
            os.chmod(dest, mode)
        except OSError as e:
            raise FileStateError(
                f"cannot copy file {src} to {dest}: {e}",
                project=self.project_name,
            )


class LinkFile(_FileDirective):
    """Container for <linkfile> manifest element."""

    def _Link(self, topdir):
        """Link the self.src & self.dest paths."""
        topdir = os.path.abspath(topdir)
        base = self._SourceBase(topdir)
        # Some people use src="." to create stable links to projects.  Let's
        # allow that but reject all other uses of "." to keep things simple.
        if self.src == ".":
            src = base
            if not platform_utils.is_within(src, topdir):
                raise PathContainmentError(self.src, topdir)
        else:
            src = _SafeExpandPath(base, self.src, topdir)
        dest = _SafeExpandPath(topdir, self.dest, topdir, skipfinal=True)

        if not os.path.exists(src):
            raise FileStateError(
                f"{self.src}: link source does not exist",
                project=self.project_name,
            )
        if platform_utils.isdir(dest) and not platform_utils.islink(dest):
            raise FileStateError(
                f"{self.dest}: linking to an existing directory not allowed",
                project=self.project_name,
            )

        # dest & src are absolute paths at this point.  Make sure the target
        # of the symlink is relative in the context of the checkout tree.
        relsrc = os.path.relpath(src, os.path.dirname(dest))

        # Link file if it does not exist or is out of date.
        if platform_utils.islink(dest) and platform_utils.readlink(dest) == relsrc:
            return
        try:
            # Remove existing file first, since it might be read-only.
            if os.path.lexists(dest):
                platform_utils.remove(dest)
            else:
                os.makedirs(os.path.dirname(dest), exist_ok=True)
            platform_utils.symlink(relsrc, dest)
        except OSError as e:
            raise FileStateError(
                f"cannot link file {relsrc} to {dest}: {e}",
                project=self.project_name,
            )


class RemoteSpec:
    def __init__(self, name, url=None):
        self.name = name
        self.url = url


class ResolvedProject(NamedTuple):
    """ResolveProject return value.

    Attributes:
      remote (RemoteSpec): The remote the project is fetched from.
      url (str): The full clone url.
      revision (str): The branch, tag or commit to sync to.
    """

    remote: RemoteSpec
    url: str
    revision: str


class Project:
    """A single version-controlled directory described by the manifest."""

    XML_ATTRS = (
        ("name", "name"),
        ("path", "path"),
        ("remote", "remote"),
        ("revision", "revision"),
        ("dest-branch", "dest_branch"),
        ("groups", "groups"),
        ("sync-c", "sync_c"),
        ("sync-s", "sync_s"),
        ("sync-tags", "sync_tags"),
        ("upstream", "upstream"),
        ("clone-depth", "clone_depth"),
        ("force-path", "force_path"),
    )

    def __init__(
        self,
        name,
        path=None,
        remote=None,
        revision=None,
        dest_branch=None,
        groups=None,
        sync_c=None,
        sync_s=None,
        sync_tags=None,
        upstream=None,
        clone_depth=None,
        force_path=None,
    ):
        self.name = name
        self.path = path
        self.remote = remote
        self.revision = revision
        self.dest_branch = dest_branch
        self.groups = groups
        self.sync_c = sync_c
        self.sync_s = sync_s
        self.sync_tags = sync_tags
        self.upstream = upstream
        self.clone_depth = clone_depth
        self.force_path = force_path
        self.copyfiles = []
        self.linkfiles = []
        self.annotations = []

    def __eq__(self, other):
        if not isinstance(other, Project):
            return False
        return self.__dict__ == other.__dict__

    def __repr__(self):
        return f"<Project {self.name} @ {self.relpath}>"

    @property
    def relpath(self):
        """The on-disk location relative to the top of the tree."""
        return self.path or self.name

    def Worktree(self, topdir):
        return os.path.join(topdir, self.relpath)

    def AddAnnotation(self, name, value, keep):
        self.annotations.append(Annotation(name, value, keep))

    def Sync(
        self,
        topdir,
        url,
        revision,
        remote_name=DEFAULT_REMOTE_NAME,
        detach=False,
        force=False,
        update_strategy=UPDATE_RESET,
        git=None,
    ):
        """Bring the checkout of this project up to |revision|.

        An existing checkout is updated in place; otherwise a new one is
        initialized, pointed at |url| and populated with a depth-1 fetch.

        Args:
            topdir: Absolute path to the top of the checkout tree.
            url: The clone url of the project.
            revision: The branch, tag or commit to sync to.
            remote_name: The name to register the remote under.
            detach: Finish with an explicit checkout of |revision|.
            force: Replace a non-empty directory that is not a checkout.
            update_strategy: UPDATE_RESET or UPDATE_REBASE.
            git: The version-control backend, called as git(cwd, argv) and
                returning the exit status.  Defaults to RunGit.

        Returns:
            True if a new checkout was created, False if one was updated.
        """
        git = git or self._DefaultGit
        worktree = self.Worktree(topdir)

        cloned = False
        if os.path.isdir(os.path.join(worktree, ".git")):
            self._Update(
                git, worktree, revision, remote_name, detach, update_strategy
            )
        else:
            self._PrepareWorktree(worktree, force)
            self._Clone(git, worktree, url, revision, remote_name)
            cloned = True

        if detach:
            self._RunGit(git, worktree, ["checkout", revision])
        return cloned

    def _DefaultGit(self, cwd, cmdv):
        return RunGit(cwd, cmdv, project=self)

    def _RunGit(self, git, cwd, cmdv):
        logger.debug("%s: git %s", self.name, " ".join(cmdv))
        rc = git(cwd, cmdv)
        if rc != 0:
            raise GitCommandError(
                project=self.name, command_args=cmdv, git_rc=rc
            )

    def _PrepareWorktree(self, worktree, force):
        """Make sure |worktree| is an empty directory we may clone into."""
        if os.path.lexists(worktree) and not platform_utils.isdir(worktree):
            if not force:
                raise SyncProjectError(
                    f"{worktree} exists and is not a directory; "
                    "use --force-sync to replace it",
                    project=self.name,
                )
            platform_utils.remove(worktree)
        elif platform_utils.isdir(worktree) and platform_utils.listdir(
            worktree
        ):
            if not force:
                raise SyncProjectError(
                    f"{worktree} is not empty and is not a git checkout; "
                    "use --force-sync to replace it",
                    project=self.name,
                )
            logger.warning(
                "warning: %s: removing non-checkout directory %s",
                self.name,
                worktree,
            )
            platform_utils.rmtree(worktree)
        os.makedirs(worktree, exist_ok=True)

    def _Clone(self, git, worktree, url, revision, remote_name):
        self._RunGit(git, worktree, ["init"])
        self._RunGit(git, worktree, ["remote", "add", remote_name, url])
        self._RunGit(
            git, worktree, ["fetch", "--depth", "1", remote_name, revision]
        )
        self._RunGit(git, worktree, ["checkout", FETCH_HEAD])

    def _Update(
        self, git, worktree, revision, remote_name, detach, update_strategy
    ):
        rebase = update_strategy == UPDATE_REBASE and not detach
        if rebase:
            # Local work sits on top of the previous fetch; remember its tip.
            self._RunGit(
                git, worktree, ["update-ref", UPSTREAM_REF, FETCH_HEAD]
            )
        self._RunGit(
            git,
            worktree,
            ["fetch", remote_name, "--prune", "--depth", "1", revision],
        )
        if update_strategy == UPDATE_REBASE:
            if not rebase:
                # The final checkout moves HEAD anyway.
                return
            try:
                self._RunGit(
                    git,
                    worktree,
                    ["rebase", "--onto", FETCH_HEAD, UPSTREAM_REF],
                )
            except GitCommandError as e:
                logger.warning(
                    "warning: %s: rebase failed; restoring %s",
                    self.name,
                    worktree,
                )
                try:
                    git(worktree, ["rebase", "--abort"])
                except GitCommandError as abort_err:
                    logger.error("error: %s: %s", self.name, abort_err)
                raise e
        else:
            self._RunGit(git, worktree, ["reset", "--hard", FETCH_HEAD])


def ResolveRemote(project, manifest):
    """Find the remote |project| is fetched from.

    Precedence: the project's remote, then <default remote>, then "origin".

    Returns:
        A RemoteSpec with the full clone url for |project|.

    Raises:
        RemoteNotFoundError: No <remote> has the resolved name.
    """
    name = project.remote
    if not name and manifest.default is not None:
        name = manifest.default.remote
    if not name:
        name = DEFAULT_REMOTE_NAME

    remote = manifest.GetRemote(name)
    if remote is None:
        raise RemoteNotFoundError(name, project=project.name)
    return remote.ToRemoteSpec(project.name)


def ResolveRevision(project, manifest):
    """Find the revision |project| is synced to.

    Raises:
        RevisionUnresolvedError: Neither the project nor <default> have one.
    """
    if project.revision:
        return project.revision
    default = manifest.default
    if default is not None and default.revision:
        return default.revision
    raise RevisionUnresolvedError(default is not None, project=project.name)


def ResolveProject(project, manifest):
    """Compute where |project| comes from and what it is synced to.

    This has no side effects.
    """
    remote = ResolveRemote(project, manifest)
    revision = ResolveRevision(project, manifest)
    return ResolvedProject(remote, remote.url, revision)
