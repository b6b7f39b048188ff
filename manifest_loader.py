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

import os

from manifest_merge import MergeManifests
from manifest_xml import DEFAULT_REMOTE
from manifest_xml import DEFAULT_REVISION
from manifest_xml import LOCAL_MANIFESTS_DIR_NAME
from manifest_xml import XmlManifest
import platform_utils
from repo_logging import RepoLogger


logger = RepoLogger(__file__)


def ParseManifest(
    path,
    default_remote=DEFAULT_REMOTE,
    default_revision=DEFAULT_REVISION,
    local=False,
):
    return XmlManifest(path, local=local).Load(
        default_remote=default_remote, default_revision=default_revision
    )


def LocalManifestsDir(path):
    """The overlay directory used for the manifest at |path|."""
    return os.path.join(
        os.path.dirname(os.path.abspath(path)), LOCAL_MANIFESTS_DIR_NAME
    )


def GetLocalManifests(local_manifests_dir):
    """Return the overlay files in |local_manifests_dir|, in sorted order."""
    if not platform_utils.isdir(local_manifests_dir):
        return []
    return [
        os.path.join(local_manifests_dir, name)
        for name in sorted(platform_utils.listdir(local_manifests_dir))
        if name.endswith(".xml")
        and os.path.isfile(os.path.join(local_manifests_dir, name))
    ]


def GetManifest(
    path,
    local_manifests=None,
    default_remote=DEFAULT_REMOTE,
    default_revision=DEFAULT_REVISION,
):
    """Load the effective manifest: |path| plus every local overlay.

    Args:
        path: The main manifest file.
        local_manifests: Directory holding overlay *.xml files.  Defaults to
            .repo/local_manifests next to |path|.
        default_remote: Fallback remote when the main manifest has no
            <default>.
        default_revision: Fallback revision when the main manifest has no
            <default>.
    """
    manifest = ParseManifest(
        path, default_remote=default_remote, default_revision=default_revision
    )

    if local_manifests is None:
        local_manifests = LocalManifestsDir(path)
    for overlay_path in GetLocalManifests(local_manifests):
        logger.debug("merging local manifest %s", overlay_path)
        # Overlays get no synthesized <default>, so they cannot mask the
        # base manifest's one by accident.
        overlay = ParseManifest(
            overlay_path, default_remote=None, default_revision=None, local=True
        )
        MergeManifests(manifest, overlay)
    return manifest
