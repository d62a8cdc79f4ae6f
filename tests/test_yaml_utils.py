#!/usr/bin/env python3
"""
Unit tests for the YAML helpers.
"""

import os
import shutil
import tempfile
import unittest

import yaml

from konflux_tools.errors import ConfigError
from konflux_tools.yaml_utils import (TextLoader, dump_yaml, load_yaml, load_yaml_documents,
                                      scalar_text)


class TestDumpYaml(unittest.TestCase):
    """Test cases for dump_yaml function."""

    def test_multiline_strings_are_literal_blocks(self):
        text = dump_yaml({"spec": {"description": "First line.\nSecond line."}})

        self.assertIn("description: |-\n    First line.\n    Second line.\n", text)

    def test_keys_are_sorted_recursively(self):
        text = dump_yaml({"b": {"z": 1, "a": 2}, "a": [{"y": 1, "x": 2}]})

        self.assertEqual(text, "a:\n  - x: 2\n    y: 1\nb:\n  a: 2\n  z: 1\n")

    def test_key_order_can_be_kept(self):
        text = dump_yaml({"schema": "olm.template.basic", "entries": []}, sort_keys=False)

        self.assertTrue(text.startswith("schema:"))

    def test_long_lines_are_not_folded(self):
        value = "x " * 200
        self.assertEqual(yaml.safe_load(dump_yaml({"k": value}))["k"], value)


class TestLoadYaml(unittest.TestCase):
    """Test cases for the YAML loaders."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def write(self, content):
        path = os.path.join(self.tmp, "file.yaml")
        with open(path, "w") as f:
            f.write(content)
        return path

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_yaml(os.path.join(self.tmp, "missing.yaml"))

    def test_invalid_yaml(self):
        with self.assertRaises(ConfigError):
            load_yaml(self.write("a: [b\n"))

    def test_documents_skip_empty(self):
        docs = load_yaml_documents(self.write("---\na: 1\n---\n---\nb: 2\n"))

        self.assertEqual(docs, [{"a": 1}, {"b": 2}])

    def test_booleans_and_dates_are_read_as_yaml_1_2(self):
        """Test that only true/false are booleans and timestamps stay strings."""
        doc = load_yaml(self.write("a: yes\nb: off\nc: true\nd: False\n"
                                   "createdAt: 2025-07-01T10:00:00Z\nreplicas: 1\n"))

        self.assertEqual(doc, {"a": "yes", "b": "off", "c": True, "d": False,
                               "createdAt": "2025-07-01T10:00:00Z", "replicas": 1})

    def test_text_loader_keeps_source_text(self):
        """Test that the text loader leaves plain scalars as written."""
        doc = load_yaml(self.write("a: 1.30\nb: 4.20\nc: true\nd: 010\ne: ~\n"), loader=TextLoader)

        self.assertEqual(doc, {"a": "1.30", "b": "4.20", "c": "true", "d": "010", "e": None})


class TestScalarText(unittest.TestCase):
    """Test cases for scalar_text function."""

    def test_strings(self):
        self.assertEqual(scalar_text("value\n\n"), "value")
        self.assertEqual(scalar_text("  indented"), "  indented")

    def test_other_values(self):
        self.assertEqual(scalar_text(None), "")
        self.assertEqual(scalar_text(42), "42")
        self.assertEqual(scalar_text(True), "true")
        self.assertEqual(scalar_text({"a": 1}), "a: 1")


if __name__ == '__main__':
    unittest.main(verbosity=2)
