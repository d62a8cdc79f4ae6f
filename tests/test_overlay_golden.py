#!/usr/bin/env python3
"""
Golden file tests for the CSV overlay.

Each case lives in tests/data/overlay/<operator>/<release>/NN.data and holds
the input CSV (<csv>.clusterserviceversion.in.yaml), the pinning, mapping and
release files, and the expected CSV under expected/. The overlay is run with
the production mapping and the documents are compared without their
createdAt annotation.
"""

import glob
import os
import shutil
import tempfile
import unittest

import yaml

from konflux_tools import MAP_PRODUCTION
from konflux_tools.overlay import BundleOverlay
from konflux_tools.yaml_utils import CoreLoader

DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data", "overlay")
CSV_INPUT_SUFFIX = ".clusterserviceversion.in.yaml"


def load_without_created_at(path):
    with open(path) as f:
        doc = yaml.load(f, Loader=CoreLoader)
    doc.get("metadata", {}).get("annotations", {}).pop("createdAt", None)
    return doc


def golden_cases():
    return sorted(glob.glob(os.path.join(DATA_DIR, "*", "*", "*.data")))


class TestOverlayGolden(unittest.TestCase):
    """Run the overlay over every golden case."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def run_case(self, data_dir, runs=1):
        csv_inputs = glob.glob(os.path.join(data_dir, "*" + CSV_INPUT_SUFFIX))
        self.assertEqual(len(csv_inputs), 1, f"expected a single CSV input in {data_dir}")
        csv_prefix = os.path.basename(csv_inputs[0])[:-len(CSV_INPUT_SUFFIX)]

        actual = os.path.join(self.tmp, f"{csv_prefix}.clusterserviceversion.yaml")
        shutil.copy(csv_inputs[0], actual)

        for _ in range(runs):
            BundleOverlay(actual,
                          pinning_file=os.path.join(data_dir, "pin_images.in.yaml"),
                          release_file=os.path.join(data_dir, "release.in.yaml"),
                          mapping_file=os.path.join(data_dir, "map_images.in.yaml"),
                          map_target=MAP_PRODUCTION).run()

        expected = os.path.join(data_dir, "expected", f"{csv_prefix}.clusterserviceversion.yaml")
        return load_without_created_at(actual), load_without_created_at(expected)

    def test_cases_exist(self):
        self.assertTrue(golden_cases(), f"no golden cases found under {DATA_DIR}")

    def test_overlay_matches_expected(self):
        """Test that the overlay output matches the expected CSV."""
        for data_dir in golden_cases():
            with self.subTest(case=os.path.relpath(data_dir, DATA_DIR)):
                actual, expected = self.run_case(data_dir)
                self.assertEqual(actual, expected)

    def test_overlay_is_idempotent(self):
        """Test that overlaying the output again gives the same document."""
        for data_dir in golden_cases():
            with self.subTest(case=os.path.relpath(data_dir, DATA_DIR)):
                actual, expected = self.run_case(data_dir, runs=2)
                self.assertEqual(actual, expected)


if __name__ == '__main__':
    unittest.main(verbosity=2)
