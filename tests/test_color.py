# Copyright 2019 The Android Open Source Project
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

"""Unittests for the color.py module."""

import os
import unittest
from unittest import mock

import color


class FakeConfig:
    """Minimal stand-in for a config object with GetString()."""

    def __init__(self, values):
        self.values = values

    def GetString(self, name):
        return self.values.get(name)


CONFIG = FakeConfig(
    {
        "color.ui": "always",
        "color.status.one": "yellow",
        "color.status.two": "magenta cyan",
        "color.status.text": "black red ul",
        "color.status.reset": "reset",
        "color.status.none": None,
        "color.status.empty": "",
    }
)


class ColoringTests(unittest.TestCase):
    """tests of the Coloring class."""

    def setUp(self):
        self._saved_default = color.DEFAULT
        color.DEFAULT = None
        self.color = color.Coloring(CONFIG, "status")

    def tearDown(self):
        color.DEFAULT = self._saved_default

    def test_Color_Parse_all_params_none(self):
        """all params are None"""
        val = self.color._parse(None, None, None, None)
        self.assertEqual("", val)

    def test_Color_Parse_first_parameter_none(self):
        """fg is black(30), bg is red(31+10=41), attr is ul(4)"""
        val = self.color._parse(None, "black", "red", "ul")
        self.assertEqual("\x1b[4;30;41m", val)

    def test_Color_Parse_text_entry(self):
        """text = black red ul"""
        val = self.color._parse("text", None, None, None)
        self.assertEqual("\033[4;30;41m", val)

    def test_Color_Parse_one_entry(self):
        """one = yellow"""
        val = self.color._parse("one", None, None, None)
        self.assertEqual("\033[33m", val)

    def test_Color_Parse_two_entry(self):
        """two = magenta cyan"""
        val = self.color._parse("two", None, None, None)
        self.assertEqual("\033[35;46m", val)

    def test_Color_Parse_reset_entry(self):
        """config entry is reset"""
        val = self.color._parse("reset", None, None, None)
        self.assertEqual("\033[m", val)

    def test_Color_Parse_empty_entry(self):
        """config entry is missing or empty, so the defaults apply"""
        val = self.color._parse("none", "blue", "white", "dim")
        self.assertEqual("\033[2;34;47m", val)
        val = self.color._parse("empty", "green", "white", "bold")
        self.assertEqual("\033[1;32;47m", val)

    def test_colorer_off(self):
        """With coloring off, text passes through untouched."""
        c = color.Coloring(FakeConfig({"color.ui": "never"}), "status")
        self.assertFalse(c.is_on)
        self.assertEqual("x 1", c.colorer(fg="red")("x %d", 1))
        self.assertEqual("x", c.nofmt_colorer(fg="red")("x"))

    def test_colorer_on(self):
        self.assertTrue(self.color.is_on)
        self.assertEqual(
            "\033[31mx 1\033[m", self.color.colorer(fg="red")("x %d", 1)
        )


class DefaultColoringTests(unittest.TestCase):
    """Check SetDefaultColoring and the environment fallback."""

    def setUp(self):
        self._saved_default = color.DEFAULT
        color.DEFAULT = None

    def tearDown(self):
        color.DEFAULT = self._saved_default

    def test_set_default(self):
        color.SetDefaultColoring("never")
        self.assertFalse(color.Coloring(CONFIG, "status").is_on)
        color.SetDefaultColoring("yes")
        self.assertEqual("always", color.DEFAULT)
        color.SetDefaultColoring(None)
        self.assertEqual("always", color.DEFAULT)

    def test_env_fallback(self):
        with mock.patch.dict(os.environ, {color.COLOR_ENV: "never"}):
            self.assertFalse(color.Coloring(CONFIG, "status").is_on)
