# Copyright 2021 The Android Open Source Project
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

"""Unittests for the error.py module."""

import inspect
import pickle
import unittest

import error
import git_command
from subcmds import sync


class PickleTests(unittest.TestCase):
    """Make sure all our custom exceptions can be pickled."""

    def getExceptions(self):
        """Return all our custom exceptions."""
        for entry in (error, git_command, sync):
            for name in dir(entry):
                cls = getattr(entry, name)
                if isinstance(cls, type) and issubclass(cls, Exception):
                    yield cls

    def testExceptionLookup(self):
        """Make sure our introspection logic works."""
        classes = list(self.getExceptions())
        self.assertIn(error.ManifestSchemaError, classes)
        self.assertIn(git_command.GitCommandError, classes)
        # Don't assert the exact number to avoid being a change-detector test.
        self.assertGreater(len(classes), 10)

    def testPickle(self):
        """Try to pickle all the exceptions."""
        for cls in self.getExceptions():
            args = inspect.getfullargspec(cls.__init__).args[1:]
            obj = cls(*args)
            p = pickle.dumps(obj)
            try:
                newobj = pickle.loads(p)
            except Exception as e:  # pylint: disable=broad-except
                self.fail(
                    "Class %s is unable to be pickled: %s\n"
                    "Incomplete super().__init__(...) call?" % (cls, e)
                )
            self.assertIsInstance(newobj, cls)
            self.assertEqual(str(obj), str(newobj))


class TaxonomyTests(unittest.TestCase):
    """Check where errors sit in the hierarchy."""

    def test_load_errors_abort(self):
        """Manifest load failures terminate the command."""
        for cls in (
            error.ManifestSchemaError,
            error.ManifestIncludeError,
            error.IncludeCycleError,
            error.ManifestInvalidPathError,
        ):
            self.assertTrue(issubclass(cls, error.ManifestParseError))
            self.assertTrue(issubclass(cls, error.RepoExitError))

    def test_project_errors_recoverable(self):
        """Per-project failures can be collected and aggregated."""
        for cls in (
            error.RemoteNotFoundError,
            error.RevisionUnresolvedError,
            error.PathContainmentError,
            error.FileStateError,
            git_command.GitCommandError,
            git_command.GitPopenCommandError,
        ):
            self.assertTrue(issubclass(cls, error.RepoError))
            self.assertFalse(issubclass(cls, error.RepoExitError))

    def test_sync_errors(self):
        self.assertTrue(issubclass(sync.SyncFailFastError, error.SyncError))
        self.assertTrue(issubclass(sync.SmartSyncError, error.SyncError))


class MessageTests(unittest.TestCase):
    """Check the user visible messages."""

    def test_revision_unresolved(self):
        self.assertEqual(
            "Default element is missing and project does not specify a "
            "revision",
            str(error.RevisionUnresolvedError(False)),
        )
        self.assertEqual(
            "Default element does not specify a revision and project does "
            "not specify a revision",
            str(error.RevisionUnresolvedError(True)),
        )

    def test_remote_not_found(self):
        e = error.RemoteNotFoundError("gerrit", project="a/b")
        self.assertEqual("Remote 'gerrit' not found in manifest", str(e))
        self.assertEqual("a/b", e.project)

    def test_include_cycle(self):
        e = error.IncludeCycleError(["/m/a.xml", "/m/b.xml", "/m/a.xml"])
        self.assertEqual(
            "include cycle detected: /m/a.xml -> /m/b.xml -> /m/a.xml", str(e)
        )

    def test_path_containment(self):
        e = error.PathContainmentError("../evil", "/top")
        self.assertIn("../evil", str(e))
        self.assertIn("outside the target directory /top", str(e))
