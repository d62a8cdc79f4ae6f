#!/usr/bin/env python3
"""
Unit tests for the konflux-tools command line.
"""

import io
import os
import shutil
import tempfile
import unittest
from unittest import mock

import yaml

from konflux_tools import cli
from konflux_tools.catalog import CatalogComparison

CSV = """apiVersion: operators.coreos.com/v1alpha1
kind: ClusterServiceVersion
metadata:
  name: operator.v0.0.1
spec:
  version: 0.0.1
"""


class TestCli(unittest.TestCase):
    """Test cases for the main entry point."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def write(self, name, content):
        path = os.path.join(self.tmp, name)
        with open(path, "w") as f:
            f.write(content)
        return path

    def test_no_subcommand(self):
        with mock.patch("sys.stdout", new_callable=io.StringIO):
            self.assertEqual(cli.main(["konflux-tools"]), 1)

    def test_bundle_overlay(self):
        csv = self.write("operator.clusterserviceversion.yaml", CSV)
        release = self.write("release.in.yaml", "variables:\n  version: 0.0.2\n  display_name: Operator\n")

        rc = cli.main(["konflux-tools", "bundle-overlay", "--set-csv-file", csv, "--set-release-file", release])

        self.assertEqual(rc, 0)
        with open(csv) as f:
            doc = yaml.safe_load(f)
        self.assertEqual(doc["spec"]["version"], "0.0.2")
        self.assertEqual(doc["spec"]["displayName"], "Operator")

    def test_bundle_overlay_missing_file(self):
        """Test that library errors are reported with exit status 1."""
        csv = self.write("operator.clusterserviceversion.yaml", CSV)

        with self.assertLogs(level="ERROR") as logs:
            rc = cli.main(["konflux-tools", "bundle-overlay", "--set-csv-file", csv,
                           "--set-pinning-file", os.path.join(self.tmp, "missing.yaml")])

        self.assertEqual(rc, 1)
        self.assertIn("does not exist", logs.output[0])

    def test_mapping_targets_are_exclusive(self):
        csv = self.write("operator.clusterserviceversion.yaml", CSV)

        with mock.patch("sys.stderr", new_callable=io.StringIO):
            with self.assertRaises(SystemExit) as context:
                cli.main(["konflux-tools", "bundle-overlay", "--set-csv-file", csv,
                          "--set-mapping-staging", "--set-mapping-production"])

        self.assertEqual(context.exception.code, 2)

    def test_filter_unused_repos(self):
        repo = self.write("redhat.repo", "[a]\nenabled = 1\n\n[b]\nenabled = 0\n")

        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            rc = cli.main(["konflux-tools", "filter-unused-repos", repo])

        self.assertEqual(rc, 0)
        self.assertIn("[a]", stdout.getvalue())
        self.assertNotIn("[b]", stdout.getvalue())

    @mock.patch("konflux_tools.cli.download.ensure_tool")
    def test_download_uses_environment(self, ensure_tool):
        with mock.patch.dict(os.environ, {"INSTALL_DIR": self.tmp, "YQ_VERSION": "v4.44.0"}):
            rc = cli.main(["konflux-tools", "download", "yq", "jq"])

        self.assertEqual(rc, 0)
        ensure_tool.assert_any_call("yq", "v4.44.0", install_dir=self.tmp, force=False)
        ensure_tool.assert_any_call("jq", None, install_dir=self.tmp, force=False)

    @mock.patch("konflux_tools.cli.download.ensure_go_tool")
    def test_download_go_tool(self, ensure_go_tool):
        module = "sigs.k8s.io/controller-tools/cmd/controller-gen@v0.16.3"
        with mock.patch.dict(os.environ, {"INSTALL_DIR": self.tmp}):
            rc = cli.main(["konflux-tools", "download-go-tool", "controller-gen", module, "--force"])

        self.assertEqual(rc, 0)
        ensure_go_tool.assert_called_once_with("controller-gen", module, install_dir=self.tmp, force=True)

    @mock.patch("konflux_tools.cli.catalog.overlay_production_bundle")
    def test_overlay_catalog_production_defaults(self, overlay):
        env = {"PACKAGE_NAME_KONFLUX": "lifecycle-agent", "CATALOG_FILE": "catalog.yaml"}
        with mock.patch.dict(os.environ, env):
            rc = cli.main(["konflux-tools", "overlay-catalog-production"])

        self.assertEqual(rc, 0)
        overlay.assert_called_once_with(
            "catalog.yaml",
            "quay.io/redhat-user-workloads/telco-5g-tenant/lifecycle-agent-operator-bundle-4-20",
            "registry.redhat.io/openshift4/lifecycle-agent-operator-bundle")

    @mock.patch("konflux_tools.cli.catalog.compare_catalog")
    def test_compare_catalog_mismatch(self, compare):
        compare.return_value = CatalogComparison("generated.yaml", "upstream.yaml", 2, 3, "aaa", "bbb",
                                                 ["--- upstream.yaml\n", "+++ generated.yaml\n"])

        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            rc = cli.main(["konflux-tools", "compare-catalog", "--catalog-path", self.tmp,
                           "--upstream-image", "quay.io/fbc:latest", "--no-cleanup"])

        self.assertEqual(rc, 1)
        self.assertIn("❌", stdout.getvalue())
        self.assertIn("+++ generated.yaml", stdout.getvalue())
        compare.assert_called_once_with(self.tmp, "quay.io/fbc:latest", temp_dir=None, cleanup=False)

    @mock.patch("konflux_tools.cli.catalog.compare_catalog")
    def test_compare_catalog_match(self, compare):
        compare.return_value = CatalogComparison("generated.yaml", "upstream.yaml", 2, 2, "aaa", "aaa")

        with mock.patch("sys.stdout", new_callable=io.StringIO) as stdout:
            rc = cli.main(["konflux-tools", "compare-catalog", "--upstream-image", "quay.io/fbc:latest"])

        self.assertEqual(rc, 0)
        self.assertIn("✅", stdout.getvalue())


if __name__ == '__main__':
    unittest.main(verbosity=2)
