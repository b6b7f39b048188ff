# Copyright (C) 2016 The Android Open Source Project
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

"""Filesystem helpers shared by the loader, the scheduler and copy/link."""

import errno
import os
import platform
import shutil
import stat


def isWindows():
    """Returns True when running with the native port of Python for Windows,
    False when running on any other platform (including the Cygwin port of
    Python).
    """
    # Note: The cygwin port of Python returns "CYGWIN_NT_xxx"
    return platform.system() == "Windows"


def symlink(source, link_name):
    """Creates a symbolic link pointing to source named link_name.

    On Windows, source must exist on disk so we know whether to create a file
    or a directory link.
    """
    target_is_directory = False
    if isWindows():
        target = os.path.join(os.path.dirname(link_name), source)
        target_is_directory = isdir(target)
    os.symlink(source, link_name, target_is_directory=target_is_directory)


def rmtree(path, ignore_errors=False):
    """shutil.rmtree(path) wrapper that also removes read-only entries."""
    shutil.rmtree(path, ignore_errors=ignore_errors, onerror=handle_rmtree_error)


def handle_rmtree_error(function, path, excinfo):
    # Allow deleting read-only files.
    os.chmod(path, stat.S_IWRITE)
    function(path)


def remove(path, missing_ok=False):
    """Remove (delete) the file path.

    This is a replacement for os.remove that allows deleting read-only files
    on Windows.
    """
    try:
        os.remove(path)
    except FileNotFoundError:
        if not missing_ok:
            raise
    except OSError as e:
        if e.errno != errno.EACCES:
            raise
        os.chmod(path, stat.S_IWRITE)
        os.remove(path)


def listdir(path):
    return os.listdir(path)


def isdir(path):
    return os.path.isdir(path)


def islink(path):
    return os.path.islink(path)


def readlink(path):
    """Return the path to which the symbolic link points.

    The result may be either an absolute or relative pathname; if it is
    relative, it may be converted to an absolute pathname using
    os.path.join(os.path.dirname(path), result).
    """
    return os.readlink(path)


def realpath(path):
    """Return the canonical path of |path|, eliminating any symbolic links."""
    return os.path.realpath(path)


def is_within(path, root):
    """Whether |path| is |root| itself or lives somewhere beneath it.

    Both paths are normalized lexically first, so ".." components cannot be
    used to climb out of |root|.
    """
    path = os.path.normpath(os.path.abspath(path))
    root = os.path.normpath(os.path.abspath(root))
    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        # Different drives on Windows.
        return False
