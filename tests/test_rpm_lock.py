#!/usr/bin/env python3
"""
Unit tests for filtering unused repositories of a redhat.repo file.
"""

import os
import shutil
import tempfile
import unittest

from konflux_tools.errors import ConfigError
from konflux_tools.rpm_lock import filter_repo_file, filter_unused_repos

REPO_FILE = """#
# Certificate-Based Repositories
# Managed by (rhsm) subscription-manager
#
[rhel-9-for-x86_64-baseos-rpms]
name = Red Hat Enterprise Linux 9 for x86_64 - BaseOS (RPMs)
baseurl = https://cdn.redhat.com/content/dist/rhel9/$releasever/x86_64/baseos/os
enabled = 1
gpgcheck = 1

[rhel-9-for-x86_64-baseos-debug-rpms]
name = Red Hat Enterprise Linux 9 for x86_64 - BaseOS (Debug RPMs)
enabled = 0

[rhel-9-for-x86_64-appstream-rpms]
name = Red Hat Enterprise Linux 9 for x86_64 - AppStream (RPMs)
enabled = 1
"""


class TestFilterUnusedRepos(unittest.TestCase):
    """Test cases for filter_unused_repos function."""

    def test_keeps_enabled_repositories(self):
        filtered = filter_unused_repos(REPO_FILE)

        self.assertEqual(filtered,
                         "#\n"
                         "# Certificate-Based Repositories\n"
                         "# Managed by (rhsm) subscription-manager\n"
                         "#\n"
                         "[rhel-9-for-x86_64-baseos-rpms]\n"
                         "name = Red Hat Enterprise Linux 9 for x86_64 - BaseOS (RPMs)\n"
                         "baseurl = https://cdn.redhat.com/content/dist/rhel9/$releasever/x86_64/baseos/os\n"
                         "enabled = 1\n"
                         "gpgcheck = 1\n"
                         "\n"
                         "\n"
                         "\n"
                         "[rhel-9-for-x86_64-appstream-rpms]\n"
                         "name = Red Hat Enterprise Linux 9 for x86_64 - AppStream (RPMs)\n"
                         "enabled = 1\n"
                         "\n")

    def test_enabled_line_must_match_exactly(self):
        """Test that only the exact 'enabled = 1' line enables a repository."""
        text = "[a]\nenabled=1\n\n[b]\nenabled = 1 \n\n[c]\nenabled = 1\n"

        filtered = filter_unused_repos(text)

        self.assertNotIn("[a]", filtered)
        self.assertNotIn("[b]", filtered)
        self.assertIn("[c]", filtered)

    def test_section_ends_at_next_section(self):
        """Test that a block without trailing blank line ends at the next section."""
        text = "[a]\nenabled = 1\n[b]\nenabled = 0\n"

        self.assertEqual(filter_unused_repos(text), "[a]\nenabled = 1\n\n")

    def test_late_comments_are_dropped(self):
        """Test that comments outside the file header are not kept."""
        text = "\n" * 10 + "# late comment\n[a]\nenabled = 1\n"

        filtered = filter_unused_repos(text)

        self.assertNotIn("late comment", filtered)
        self.assertEqual(filtered, "\n" * 10 + "[a]\nenabled = 1\n\n")

    def test_no_enabled_repositories(self):
        self.assertEqual(filter_unused_repos("[a]\nenabled = 0\n"), "")


class TestFilterRepoFile(unittest.TestCase):

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            filter_repo_file("/nonexistent/redhat.repo")

    def test_reads_file(self):
        tmp = tempfile.mkdtemp()
        try:
            path = os.path.join(tmp, "redhat.repo")
            with open(path, "w") as f:
                f.write(REPO_FILE)
            self.assertEqual(filter_repo_file(path), filter_unused_repos(REPO_FILE))
        finally:
            shutil.rmtree(tmp)


if __name__ == '__main__':
    unittest.main(verbosity=2)
