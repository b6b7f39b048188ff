# Copyright (C) 2023 The Android Open Source Project
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

"""Apply local overlay manifests on top of a base manifest."""

from repo_logging import RepoLogger


logger = RepoLogger(__file__)

# Sequences that are simply concatenated, overlay after base.
_ADDITIVE_FIELDS = (
    "remotes",
    "submanifests",
    "remove_projects",
    "projects",
    "extend_projects",
    "includes",
    "copyfiles",
    "linkfiles",
    "annotations",
)

# Single-valued elements where the overlay wins when it has one.
_OVERRIDE_FIELDS = (
    "default",
    "manifest_server",
    "repo_hooks",
    "superproject",
    "contactinfo",
)

# <extend-project> attribute -> Project attribute it overwrites.
_EXTEND_FIELDS = (
    ("dest_path", "path"),
    ("groups", "groups"),
    ("revision", "revision"),
    ("remote", "remote"),
    ("dest_branch", "dest_branch"),
    ("upstream", "upstream"),
)


def _RemoveMatches(remove, project):
    if remove.name:
        if project.name != remove.name:
            return False
        return not remove.path or project.relpath == remove.path
    return project.relpath == remove.path


def _ApplyRemoval(base, remove, source):
    """Drop the projects |remove| names from |base|.

    Projects whose revision does not match a base-rev guard are kept.
    """
    kept = []
    matched = False
    for project in base.projects:
        if not _RemoveMatches(remove, project):
            kept.append(project)
            continue
        matched = True
        if remove.base_rev and project.revision != remove.base_rev:
            logger.warning(
                "warning: %s: <remove-project> %s: revision %s does not match "
                "base-rev %s; not removing",
                source,
                project.name,
                project.revision,
                remove.base_rev,
            )
            kept.append(project)
    base.projects = kept

    if not matched and not remove.is_optional:
        logger.warning(
            "warning: %s: <remove-project> %s did not match any project",
            source,
            remove.name or remove.path,
        )


def _ApplyExtension(base, extend):
    for project in base.projects:
        if project.name != extend.name:
            continue
        if extend.path and project.relpath != extend.path:
            continue
        for src, dst in _EXTEND_FIELDS:
            value = getattr(extend, src)
            if value is not None:
                setattr(project, dst, value)


def MergeManifests(base, overlay):
    """Merge |overlay| into |base| in place.

    Removals run first and only see the projects |base| already has, then
    extensions, then the overlay's own elements are appended, and finally
    single-valued elements from the overlay replace the base's.

    Args:
        base: The XmlManifest to modify.
        overlay: The XmlManifest of one local overlay.

    Returns:
        |base|, for convenience.
    """
    source = overlay.manifestFile
    for remove in overlay.remove_projects:
        _ApplyRemoval(base, remove, source)

    for extend in overlay.extend_projects:
        _ApplyExtension(base, extend)

    for field in _ADDITIVE_FIELDS:
        getattr(base, field).extend(getattr(overlay, field))

    for field in _OVERRIDE_FIELDS:
        value = getattr(overlay, field)
        if value is not None:
            setattr(base, field, value)

    return base
