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

import concurrent.futures
import os
import threading
from typing import NamedTuple, Optional
import xmlrpc.client

from command import Command
from error import InvalidArgumentsError
from error import RepoError
from error import SyncError
from error import SyncProjectError
import manifest_loader
import platform_utils
from progress import Progress
from project import ResolveProject
from project import UPDATE_REBASE
from project import UPDATE_RESET
from project import UPDATE_STRATEGIES
from repo_logging import RepoLogger


logger = RepoLogger(__file__)

# Upper bound on parallel sync units, whatever the manifest asks for.
MAX_JOBS = 4

SMART_SYNC_MANIFEST_NAME = "smart_sync_override.xml"


class SyncFailFastError(SyncError):
    """Sync exit error when --fail-fast set."""


class SmartSyncError(SyncError):
    """Smart sync exit error."""


class SyncOptions(NamedTuple):
    """How a sync run behaves.

    Attributes:
      current_branch_only (bool): Only fetch the manifest revision.  Syncs
          always fetch a single revision, so this is accepted as-is.
      detach (bool): Leave each checkout at the exact manifest revision.
      force (bool): Replace directories that are in the way of a clone.
      jobs (int): Parallel units requested; None defers to sync-j.
      quiet (bool): No progress meter or notice.
      smart_sync (bool): Sync to the manifest server's approved manifest.
      keep (bool): Tolerate per-project failures instead of failing the run.
      fail_fast (bool): Skip units not yet started once one has failed,
        unless keep is set.
      update_strategy (str): UPDATE_RESET or UPDATE_REBASE for checkouts
          that already exist.
    """

    current_branch_only: bool = False
    detach: bool = False
    force: bool = False
    jobs: Optional[int] = None
    quiet: bool = False
    smart_sync: bool = False
    keep: bool = False
    fail_fast: bool = False
    update_strategy: str = UPDATE_RESET

    def Validate(self):
        """Check the values make sense together.

        Returns:
            self, so calls can be chained.

        Raises:
            InvalidArgumentsError: A value is out of range.
        """
        if self.update_strategy not in UPDATE_STRATEGIES:
            raise InvalidArgumentsError(
                f"unknown update strategy {self.update_strategy!r}; "
                f"expected one of {', '.join(UPDATE_STRATEGIES)}"
            )
        if self.jobs is not None and self.jobs < 1:
            raise InvalidArgumentsError(
                f"--jobs must be at least 1, not {self.jobs}"
            )
        return self


def _GetJobs(manifest, options):
    """How many units to run at once for this sync."""
    jobs = options.jobs
    if not jobs and manifest.default is not None and manifest.default.sync_j:
        try:
            jobs = int(manifest.default.sync_j)
        except ValueError:
            logger.warning(
                'warning: manifest: sync-j="%s" is not a number; using 1',
                manifest.default.sync_j,
            )
            jobs = 1
    return min(max(1, jobs or 1), MAX_JOBS)


def _SyncOneProject(project, manifest, options, topdir, git):
    resolved = ResolveProject(project, manifest)
    return project.Sync(
        topdir,
        resolved.url,
        resolved.revision,
        remote_name=resolved.remote.name,
        detach=options.detach,
        force=options.force,
        update_strategy=options.update_strategy,
        git=git,
    )


def _GroupByPath(projects):
    """Split |projects| into units; projects sharing a path share a unit."""
    groups = {}
    for project in projects:
        groups.setdefault(project.relpath, []).append(project)
    return list(groups.values())


def SyncProjects(manifest, options, topdir, project_names=None, git=None):
    """Clone or update every selected project, several at a time.

    Each project is one unit of work on a thread pool.  Projects checked
    out at the same path make up a single unit and run one after another in
    manifest order, so the last one listed wins.  A unit's failure is
    recorded and does not stop other units (unless fail_fast is set without
    keep, which skips the units that have not started yet).  Nothing is
    inspected until every unit has finished.

    Args:
        manifest: The effective XmlManifest.
        options: A SyncOptions.
        topdir: Absolute path of the checkout tree.
        project_names: Only sync these projects (names or paths).
        git: The version-control backend; see Project.Sync.

    Returns:
        The list of projects that were selected.

    Raises:
        SyncError: A unit failed and keep is not set.  aggregate_errors
            holds one error per failed project.
        SyncFailFastError: fail_fast stopped the run early.
    """
    projects = Command.GetProjects(manifest, project_names)
    jobs = _GetJobs(manifest, options)
    logger.debug("syncing %d projects with %d jobs", len(projects), jobs)

    errors = []
    errors_lock = threading.Lock()
    err_event = threading.Event()
    stop_on_error = options.fail_fast and not options.keep
    pm = Progress("Syncing", len(projects), quiet=options.quiet)

    def _ProcessOne(project):
        if stop_on_error and err_event.is_set():
            logger.debug("%s: skipped after an earlier failure", project.name)
            return
        pm.start(project.name)
        try:
            cloned = _SyncOneProject(project, manifest, options, topdir, git)
        except (RepoError, OSError) as e:
            if not isinstance(e, RepoError) or not e.project:
                e = SyncProjectError(str(e), project=project.name)
            logger.error("error: %s: %s", project.name, e)
            with errors_lock:
                errors.append(e)
            err_event.set()
        else:
            logger.debug(
                "%s: %s", project.name, "cloned" if cloned else "updated"
            )
        finally:
            pm.finish(project.name)

    def _ProcessGroup(group):
        for project in group:
            _ProcessOne(project)

    try:
        with concurrent.futures.ThreadPoolExecutor(max_workers=jobs) as pool:
            futures = [
                pool.submit(_ProcessGroup, g) for g in _GroupByPath(projects)
            ]
            for future in concurrent.futures.as_completed(futures):
                future.result()
    finally:
        pm.end()

    if errors:
        if options.keep:
            logger.warning(
                "warning: %d project(s) failed to sync; continuing",
                len(errors),
            )
        elif options.fail_fast:
            raise SyncFailFastError(
                "exited sync due to fetch errors", aggregate_errors=errors
            )
        else:
            raise SyncError(
                "unable to sync %d project(s)" % len(errors),
                aggregate_errors=errors,
            )
    return projects


def CopyLinkFiles(manifest, topdir, keep=False, projects=None):
    """Apply the <copyfile> and <linkfile> directives of the manifest.

    Directives owned by a project are only applied when that project is
    in |projects|; directives outside any project always are.

    Args:
        manifest: The effective XmlManifest.
        topdir: Absolute path of the checkout tree.
        keep: Log failures and carry on instead of stopping at the first.
        projects: The projects that were synced; None means all.

    Returns:
        The errors that were tolerated because of |keep|.

    Raises:
        SyncError: A directive failed and |keep| is not set.
    """
    if projects is None:
        projects = manifest.projects
    selected = {id(p) for p in projects}

    def _Wanted(directive):
        return directive.project is None or id(directive.project) in selected

    work = [(c, c._Copy) for c in manifest.copyfiles if _Wanted(c)]
    work += [(ln, ln._Link) for ln in manifest.linkfiles if _Wanted(ln)]

    errors = []
    for directive, apply in work:
        try:
            apply(topdir)
        except RepoError as e:
            if not keep:
                raise SyncError(str(e), aggregate_errors=[e])
            logger.error("error: %s", e)
            errors.append(e)
    return errors


def _GetSmartSyncTarget():
    if "SYNC_TARGET" in os.environ:
        return os.environ["SYNC_TARGET"]
    if "TARGET_PRODUCT" in os.environ and "TARGET_BUILD_VARIANT" in os.environ:
        return "%s-%s" % (
            os.environ["TARGET_PRODUCT"],
            os.environ["TARGET_BUILD_VARIANT"],
        )
    return None


def _SmartSyncSetup(manifest, smart_sync_manifest_path, quiet=False):
    """Fetch the approved manifest from the manifest server.

    Returns:
        The path the approved manifest was written to.
    """
    if manifest.manifest_server is None:
        raise SmartSyncError(
            "error: cannot smart sync: no manifest server defined in manifest"
        )
    if manifest.default is None or not manifest.default.revision:
        raise SmartSyncError(
            "error: cannot smart sync: no default revision in manifest"
        )

    manifest_server = manifest.manifest_server.url
    if not quiet:
        print("Using manifest server %s" % manifest_server)

    branch = manifest.default.revision
    target = _GetSmartSyncTarget()
    try:
        server = xmlrpc.client.ServerProxy(manifest_server)
        if target:
            [success, manifest_str] = server.GetApprovedManifest(branch, target)
        else:
            [success, manifest_str] = server.GetApprovedManifest(branch)
    except xmlrpc.client.ProtocolError as e:
        raise SmartSyncError(
            "error: cannot connect to manifest server %s:\n%d %s"
            % (manifest_server, e.errcode, e.errmsg),
            aggregate_errors=[e],
        )
    except (OSError, xmlrpc.client.Fault) as e:
        raise SmartSyncError(
            "error: cannot connect to manifest server %s:\n%s"
            % (manifest_server, e),
            aggregate_errors=[e],
        )

    if not success:
        raise SmartSyncError(
            "error: manifest server RPC call failed: %s" % manifest_str
        )
    try:
        with open(smart_sync_manifest_path, "w") as f:
            f.write(manifest_str)
    except OSError as e:
        raise SmartSyncError(
            "error: cannot write manifest to %s:\n%s"
            % (smart_sync_manifest_path, e),
            aggregate_errors=[e],
        )
    return smart_sync_manifest_path


def SyncRepos(
    manifest_path,
    project_list,
    options,
    target_dir,
    local_manifests=None,
    git=None,
):
    """Load the effective manifest and bring |target_dir| in line with it.

    Args:
        manifest_path: The main manifest file.
        project_list: Names (or paths) of the projects to sync, or None for
            all of them.
        options: A SyncOptions.
        target_dir: The checkout tree; created when missing.
        local_manifests: Overlay directory, see manifest_loader.GetManifest.
        git: The version-control backend; see Project.Sync.

    Returns:
        The effective manifest that was synced.
    """
    options.Validate()
    if local_manifests is None:
        local_manifests = manifest_loader.LocalManifestsDir(manifest_path)
    manifest = manifest_loader.GetManifest(
        manifest_path, local_manifests=local_manifests
    )

    smart_sync_manifest_path = os.path.join(
        os.path.dirname(os.path.abspath(manifest_path)),
        SMART_SYNC_MANIFEST_NAME,
    )
    if options.smart_sync:
        path = _SmartSyncSetup(
            manifest, smart_sync_manifest_path, quiet=options.quiet
        )
        manifest = manifest_loader.GetManifest(
            path, local_manifests=local_manifests
        )
    elif os.path.isfile(smart_sync_manifest_path):
        try:
            platform_utils.remove(smart_sync_manifest_path)
        except OSError as e:
            logger.error(
                "error: failed to remove existing smart sync override "
                "manifest: %s",
                e,
            )

    topdir = os.path.abspath(target_dir)
    os.makedirs(topdir, exist_ok=True)

    projects = SyncProjects(
        manifest, options, topdir, project_names=project_list, git=git
    )
    CopyLinkFiles(manifest, topdir, keep=options.keep, projects=projects)

    if manifest.notice and not options.quiet:
        print(manifest.notice.strip())
    return manifest


class Sync(Command):
    COMMON = True
    PARALLEL_JOBS = 0
    helpSummary = "Update working tree to the latest revision"
    helpUsage = """
%prog [<project>...]
"""
    helpDescription = """
The '%prog' command synchronizes local project directories
with the remote repositories specified in the manifest.  If a local
project does not yet exist, it will clone a new local directory from
the remote repository.  If the local project already exists, '%prog'
will fetch the manifest revision and reset the checkout to it (or,
with --rebase, rebase the current branch onto it).

Local overlays in .repo/local_manifests/*.xml next to the manifest
are merged on top of it first; they can add, remove or modify
projects.

'%prog' will synchronize all projects listed at the command
line.  Projects can be specified either by name or by path.  If no
projects are specified, '%prog' will synchronize all projects listed
in the manifest.

The -d/--detach option leaves every project at exactly the manifest
revision.

The -s/--smart-sync option can be used to sync to a known good
build as specified by the manifest-server element in the current
manifest.

By default a failing project makes the whole sync fail once every
project has been attempted.  The -k/--keep option reports the failures
but still succeeds.  The --fail-fast option stops starting new
projects as soon as one fails; it has no effect together with --keep.
"""

    def _Options(self, p):
        p.add_option(
            "-t",
            "--target",
            dest="target_dir",
            default=None,
            metavar="TARGET",
            help="directory to sync into (default: current directory)",
        )
        p.add_option(
            "-c",
            "--current-branch",
            dest="current_branch_only",
            action="store_true",
            default=False,
            help="fetch only current manifest branch from server",
        )
        p.add_option(
            "-d",
            "--detach",
            dest="detach_head",
            action="store_true",
            default=False,
            help="detach projects back to manifest revision",
        )
        p.add_option(
            "--force-sync",
            action="store_true",
            default=False,
            help="overwrite an existing directory that is not a checkout "
            "if needed",
        )
        p.add_option(
            "-s",
            "--smart-sync",
            action="store_true",
            default=False,
            help="smart sync using manifest from the latest known good build",
        )
        p.add_option(
            "-k",
            "--keep",
            action="store_true",
            default=False,
            help="succeed even when some projects fail to sync",
        )
        p.add_option(
            "--fail-fast",
            action="store_true",
            default=False,
            help="stop syncing after first error is hit",
        )
        p.add_option(
            "--rebase",
            dest="update_strategy",
            action="store_const",
            const=UPDATE_REBASE,
            default=UPDATE_RESET,
            help="rebase existing checkouts onto the fetched revision "
            "instead of resetting them",
        )

    def _RegisteredEnvironmentOptions(self):
        options = super()._RegisteredEnvironmentOptions()
        options.update(
            {
                "MSYNC_JOBS": "jobs",
                "MSYNC_TARGET": "target_dir",
            }
        )
        return options

    def ValidateOptions(self, opt, args):
        # Values read from the environment are strings.
        if isinstance(opt.jobs, str):
            try:
                opt.jobs = int(opt.jobs)
            except ValueError:
                raise InvalidArgumentsError(
                    f"MSYNC_JOBS must be a number, not {opt.jobs!r}"
                )
        if opt.target_dir is None:
            opt.target_dir = os.getcwd()

    def _SyncOptions(self, opt):
        return SyncOptions(
            current_branch_only=opt.current_branch_only,
            detach=opt.detach_head,
            force=opt.force_sync,
            jobs=opt.jobs,
            quiet=opt.quiet,
            smart_sync=opt.smart_sync,
            keep=opt.keep,
            fail_fast=opt.fail_fast,
            update_strategy=opt.update_strategy,
        ).Validate()

    def Execute(self, opt, args):
        SyncRepos(
            opt.manifest_file,
            args or None,
            self._SyncOptions(opt),
            opt.target_dir,
            local_manifests=opt.local_manifests,
        )
        if not opt.quiet:
            print("msync sync has finished successfully.")
