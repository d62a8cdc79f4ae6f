# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

"""
Filtering of unused yum repositories from a redhat.repo file, used before
generating an RPM lockfile.
"""

import logging
import os
import re

from konflux_tools.errors import ConfigError

SECTION_PATTERN = re.compile(r'^\[.*\]$')
BLANK_PATTERN = re.compile(r'^\s*$')
ENABLED_LINE = "enabled = 1"

# comment or blank lines kept from the top of the file
HEADER_LINES = 10


def filter_unused_repos(text):
    """
    Keep only the enabled repositories (`enabled = 1`) of a redhat.repo file.

    A repository block starts at its `[section]` line and ends at the next
    blank line, the next section or the end of the file. Emitted blocks are
    followed by an extra newline. Comment and blank lines found outside of a
    block within the first lines of the file are kept as the file header.
    """
    out = []
    section = []
    in_section = False
    enabled = False

    def emit_section():
        out.append("".join(section) + "\n")

    for number, line in enumerate(text.splitlines(), start=1):
        if SECTION_PATTERN.match(line):
            if in_section and enabled:
                emit_section()
            section = [line + "\n"]
            in_section = True
            enabled = False
            continue

        if in_section:
            section.append(line + "\n")
            if line == ENABLED_LINE:
                enabled = True
            if BLANK_PATTERN.match(line):
                if enabled:
                    emit_section()
                in_section = False
                section = []
                enabled = False

        # also reached by the blank line that just closed a block
        if not in_section:
            if number <= HEADER_LINES and (line.startswith("#") or BLANK_PATTERN.match(line)):
                out.append(line + "\n")

    if in_section and enabled:
        emit_section()

    return "".join(out)


def filter_repo_file(repo_file):
    if not os.path.isfile(repo_file):
        raise ConfigError(f"File '{repo_file}' not found!")

    with open(repo_file, 'r') as f:
        text = f.read()

    filtered = filter_unused_repos(text)
    logging.debug(f"Kept {filtered.count(ENABLED_LINE)} enabled repositories from {repo_file}")
    return filtered
