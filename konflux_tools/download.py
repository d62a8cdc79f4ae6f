# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

"""
Download and install the binaries used by the bundle and catalog workflows
(yq, jq, opm, operator-sdk, golangci-lint, shellcheck) with version pinning.

A tool is only downloaded when neither the system PATH nor the install
directory already provides an acceptable version. Go tools without release
binaries are built with `go install` instead, see ensure_go_tool.
"""

import logging
import os
import platform
import re
import shutil
import subprocess
import tarfile
import tempfile
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import requests
from packaging import version

from konflux_tools.errors import DownloadError, ToolError
from konflux_tools.tools import require_tool, run_tool

VERSION_REGEX = r'v?(\d+\.\d+\.\d+)'
VERSION_PATTERN = re.compile(VERSION_REGEX)

# first line of a downloaded file that is an error page instead of a binary
ERROR_BODY_PATTERN = re.compile(r'^\s*(Not\s+Found|404|Error|<html|<HTML)')

# Accept any installed version of the tool
CHECK_PRESENT = "present"
# Accept an installed version greater or equal than the requested one
CHECK_MINIMUM = "minimum"

DEFAULT_OS_NAMES = {"Linux": "linux", "Darwin": "darwin"}
DEFAULT_ARCH_NAMES = {"x86_64": "amd64", "amd64": "amd64", "aarch64": "arm64", "arm64": "arm64"}

# `go install module@version` needs Go 1.16
GO_MINIMUM_VERSION = "1.16"
GO_VERSION_PATTERN = re.compile(r'go(\d+\.\d+(?:\.\d+)?)')
GO_TOOL_VERSION_ARGS = (("--version",), ("version",), ("-version",))


@dataclass
class ToolSpec:
    """How a tool is released: url layout, archive format and version reporting"""
    name: str
    default_version: str
    url_template: str
    releases_url: str
    archive: Optional[str] = None  # None, "gz" or "xz"
    member_template: Optional[str] = None
    version_args: Tuple[str, ...] = ("--version",)
    check: str = CHECK_MINIMUM
    version_prefix: str = "v"
    version_regex: str = VERSION_REGEX
    os_names: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_OS_NAMES))
    arch_names: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ARCH_NAMES))

    def version_pattern(self):
        return re.compile(self.version_regex)

    def normalize_version(self, requested):
        bare = requested[1:] if requested.startswith("v") else requested
        return f"{self.version_prefix}{bare}"

    def template_values(self, requested, os_name, arch):
        full = self.normalize_version(requested)
        bare = full[1:] if full.startswith("v") else full
        return {"version": full, "version_no_v": bare, "os": os_name, "arch": arch}

    def url(self, requested, os_name, arch):
        return self.url_template.format(**self.template_values(requested, os_name, arch))

    def member(self, requested, os_name, arch):
        if not self.member_template:
            return None
        return self.member_template.format(**self.template_values(requested, os_name, arch))


TOOLS = {
    "yq": ToolSpec(
        name="yq",
        default_version="v4.45.4",
        url_template="https://github.com/mikefarah/yq/releases/download/{version}/yq_{os}_{arch}",
        releases_url="https://github.com/mikefarah/yq/releases",
        check=CHECK_PRESENT),
    "jq": ToolSpec(
        name="jq",
        default_version="1.7.1",
        url_template="https://github.com/jqlang/jq/releases/download/jq-{version}/jq-{os}-{arch}",
        releases_url="https://github.com/jqlang/jq/releases",
        check=CHECK_PRESENT,
        version_prefix="",
        version_regex=r'v?(\d+\.\d+(?:\.\d+)?)',
        os_names={"Linux": "linux", "Darwin": "macos"}),
    "opm": ToolSpec(
        name="opm",
        default_version="v1.50.0",
        url_template="https://github.com/operator-framework/operator-registry/releases/download/{version}/{os}-{arch}-opm",
        releases_url="https://github.com/operator-framework/operator-registry/releases",
        version_args=("version",)),
    "operator-sdk": ToolSpec(
        name="operator-sdk",
        default_version="1.40.0",
        url_template="https://github.com/operator-framework/operator-sdk/releases/download/{version}/operator-sdk_{os}_{arch}",
        releases_url="https://github.com/operator-framework/operator-sdk/releases",
        version_args=("version",)),
    "golangci-lint": ToolSpec(
        name="golangci-lint",
        default_version="v1.64.8",
        url_template=("https://github.com/golangci/golangci-lint/releases/download/{version}/"
                      "golangci-lint-{version_no_v}-{os}-{arch}.tar.gz"),
        releases_url="https://github.com/golangci/golangci-lint/releases",
        archive="gz",
        member_template="golangci-lint-{version_no_v}-{os}-{arch}/golangci-lint"),
    "shellcheck": ToolSpec(
        name="shellcheck",
        default_version="v0.10.0",
        url_template=("https://github.com/koalaman/shellcheck/releases/download/{version}/"
                      "shellcheck-{version}.{os}.{arch}.tar.xz"),
        releases_url="https://github.com/koalaman/shellcheck/releases",
        archive="xz",
        member_template="shellcheck-{version}/shellcheck",
        arch_names={"x86_64": "x86_64", "amd64": "x86_64", "aarch64": "aarch64", "arm64": "aarch64",
                    "armv6l": "armv6hf"}),
}


def get_tool_spec(name):
    try:
        return TOOLS[name]
    except KeyError:
        raise DownloadError(f"Unknown tool: {name}. Supported tools: {', '.join(sorted(TOOLS))}") from None


def normalize_platform(spec, system=None, machine=None):
    """Map platform.system()/platform.machine() to the names used by the tool's release artifacts."""
    system = system or platform.system()
    machine = machine or platform.machine()

    os_name = spec.os_names.get(system)
    if os_name is None:
        raise DownloadError(f"Unsupported operating system for {spec.name}: {system}")
    arch = spec.arch_names.get(machine)
    if arch is None:
        raise DownloadError(f"Unsupported architecture for {spec.name}: {machine}")

    logging.debug(f"Normalized platform '{system}/{machine}' to '{os_name}/{arch}'")
    return os_name, arch


def parse_version(output, pattern=VERSION_PATTERN):
    """Return the first version matched in a tool's version output, without any 'v' prefix."""
    match = pattern.search(output or "")
    return match.group(1) if match else None


def run_version(binary_path, version_args, pattern=VERSION_PATTERN):
    """Run `binary_path <version_args>` and parse the reported version, None if it can't be told."""
    if not binary_path or not os.path.isfile(binary_path) or not os.access(binary_path, os.X_OK):
        return None
    try:
        result = subprocess.run([binary_path, *version_args],
                                capture_output=True, text=True, timeout=30)
    except (OSError, subprocess.TimeoutExpired) as e:
        logging.debug(f"Could not run {binary_path}: {e}")
        return None
    return parse_version(result.stdout + result.stderr, pattern)


def installed_version(binary_path, spec):
    return run_version(binary_path, spec.version_args, spec.version_pattern())


def version_satisfies(found, requested, check):
    if check == CHECK_PRESENT:
        return True
    bare = requested[1:] if requested.startswith("v") else requested
    return version.Version(found) >= version.Version(bare)


def find_acceptable(spec, requested, install_path):
    """Return the path of an installed binary that already satisfies the request, if any."""
    candidates = (("system PATH", shutil.which(spec.name)), ("local install directory", install_path))

    for where, binary in candidates:
        if not binary or not os.path.isfile(binary):
            logging.info(f"{spec.name} not found in {where}")
            continue

        logging.info(f"Found {spec.name} in {where}: {binary}")
        if spec.check == CHECK_PRESENT:
            return binary

        found = installed_version(binary, spec)
        if found is None:
            logging.info(f"Could not determine {where} {spec.name} version")
            continue
        if version_satisfies(found, requested, spec.check):
            logging.info(f"{spec.name} version {found} meets minimum requirement {requested}")
            return binary
        logging.info(f"{spec.name} version {found} is below minimum requirement {requested}")
    return None


def fetch(url, destination, spec, requested, os_name, arch, timeout=120):
    """Download url into destination, raising DownloadError on HTTP errors or error bodies."""
    logging.info(f"Fetching {spec.name} version {requested} with url '{url}'")
    try:
        with requests.get(url, stream=True, allow_redirects=True, timeout=timeout) as response:
            if response.status_code == 404:
                raise DownloadError(f"{spec.name} version {requested} not found for {os_name}/{arch}. "
                                    f"Available versions can be found at: {spec.releases_url}")
            if response.status_code != 200:
                raise DownloadError(f"Failed to download {spec.name} version {requested} "
                                    f"(HTTP {response.status_code})")
            with open(destination, 'wb') as f:
                for chunk in response.iter_content(chunk_size=65536):
                    f.write(chunk)
    except requests.RequestException as e:
        raise DownloadError(f"Failed to download {spec.name} version {requested}: {e}") from e

    if os.path.getsize(destination) == 0:
        raise DownloadError("Downloaded file is empty")

    if spec.archive is None:
        with open(destination, 'rb') as f:
            first_line = f.readline(256).decode("utf-8", errors="replace")
        if ERROR_BODY_PATTERN.match(first_line):
            raise DownloadError(f"Downloaded file appears to be an error message, not a binary: {first_line.strip()}")


def extract_member(archive_path, spec, member_name, destination):
    """Copy the tool binary out of a tar archive into destination."""
    try:
        with tarfile.open(archive_path, f"r:{spec.archive}") as tar:
            members = [m for m in tar.getmembers() if m.isfile()]
            member = next((m for m in members if m.name == member_name), None)
            if member is None:
                member = next((m for m in members if os.path.basename(m.name) == spec.name), None)
            if member is None:
                raise DownloadError(f"Could not find {spec.name} binary in extracted archive")
            with tar.extractfile(member) as src, open(destination, 'wb') as dst:
                shutil.copyfileobj(src, dst)
    except tarfile.TarError as e:
        raise DownloadError(f"Failed to extract {spec.name} archive: {e}") from e


def install_tool(spec, requested, install_dir, system=None, machine=None):
    """Download, install and verify a tool release. Returns the installed binary path."""
    os_name, arch = normalize_platform(spec, system, machine)

    logging.info(f"Creating directory '{install_dir}'")
    os.makedirs(install_dir, exist_ok=True)

    install_path = os.path.join(install_dir, spec.name)
    temp_path = f"{install_path}.tmp"
    binary_path = f"{install_path}.new"
    try:
        fetch(spec.url(requested, os_name, arch), temp_path, spec, requested, os_name, arch)
        if spec.archive:
            extract_member(temp_path, spec, spec.member(requested, os_name, arch), binary_path)
        else:
            os.replace(temp_path, binary_path)
        os.chmod(binary_path, 0o755)
        os.replace(binary_path, install_path)
    finally:
        for leftover in (temp_path, binary_path):
            if os.path.exists(leftover):
                os.remove(leftover)

    found = installed_version(install_path, spec)
    expected = spec.normalize_version(requested).lstrip("v")
    if found != expected:
        raise ToolError(f"Failed to install {spec.name}: version check failed "
                        f"(expected {expected}, got {found or 'unknown'})")

    logging.info(f"{spec.name} version {requested} installed successfully to {install_path}")
    return install_path


def ensure_tool(name, requested=None, install_dir="bin", force=False, system=None, machine=None):
    """
    Make sure a tool is available, downloading it into install_dir if needed.

    Args:
        name (str): Tool name, one of TOOLS
        requested (str, optional): Version to install, defaults to the tool's pinned version
        install_dir (str): Directory receiving downloaded binaries
        force (bool): Download even if an acceptable binary is already installed

    Returns:
        str: Path of the binary that satisfies the request
    """
    spec = get_tool_spec(name)
    requested = requested or spec.default_version
    if not spec.version_pattern().fullmatch(requested):
        raise DownloadError(f"Invalid {name} version format: {requested} (expected {spec.version_regex})")

    install_path = os.path.join(install_dir, spec.name)
    logging.info(f"Checking for {name} with version {requested}...")

    if not force:
        binary = find_acceptable(spec, requested, install_path)
        if binary:
            logging.info(f"{name} is already installed at: {binary}")
            return binary

    logging.info(f"Downloading {name} {requested}...")
    return install_tool(spec, requested, install_dir, system, machine)


def go_tool_version(binary_path):
    """Return the X.Y.Z version a go-installed binary reports, trying the usual version flags."""
    for version_args in GO_TOOL_VERSION_ARGS:
        found = run_version(binary_path, version_args)
        if found:
            return found
    return None


def check_go(go):
    """Make sure the go toolchain is recent enough to `go install module@version`."""
    output = run_tool([go, "version"]).stdout
    match = GO_VERSION_PATTERN.search(output or "")
    if not match:
        logging.warning("Could not determine Go version, proceeding anyway...")
        return

    found = match.group(1)
    if version.Version(found) < version.Version(GO_MINIMUM_VERSION):
        raise ToolError(f"Go {GO_MINIMUM_VERSION} or newer is required, found {found}")
    logging.info(f"Found Go version {found}")


def ensure_go_tool(tool_name, go_module, install_dir="bin", force=False):
    """
    Install a Go tool with `go install` into install_dir, unless the same version is already there.

    Only install_dir is looked at, and the installed version has to match the
    module version exactly.

    Args:
        tool_name (str): Name of the binary go install produces
        go_module (str): Module to install, with its version (module@version)
        install_dir (str): Directory receiving the binary (GOBIN)
        force (bool): Install even if the requested version is already there

    Returns:
        str: Path of the installed binary
    """
    if "@" not in go_module:
        raise DownloadError(f"Go module must include a version (module@version): {go_module}")
    requested = go_module.rpartition("@")[2]
    bare = requested[1:] if requested.startswith("v") else requested

    install_dir = os.path.abspath(install_dir)
    install_path = os.path.join(install_dir, tool_name)
    logging.info(f"Checking for {tool_name} with version {requested}...")

    if not force and os.path.isfile(install_path):
        found = go_tool_version(install_path)
        if found == bare:
            logging.info(f"{tool_name} version {requested} is already installed at: {install_path}")
            return install_path
        logging.info(f"{tool_name} version {found or 'unknown'} found, but version {requested} is required")

    go = require_tool("go")
    check_go(go)

    logging.info(f"Creating directory '{install_dir}'")
    os.makedirs(install_dir, exist_ok=True)

    logging.info(f"Installing {tool_name} from {go_module}...")
    with tempfile.TemporaryDirectory(prefix=f"{tool_name}-") as work_dir:
        # go install needs a module context to resolve module@version
        run_tool([go, "mod", "init", "tmp"], cwd=work_dir)
        run_tool([go, "install", go_module], cwd=work_dir, env={**os.environ, "GOBIN": install_dir})

    if not os.path.isfile(install_path) or not os.access(install_path, os.X_OK):
        raise ToolError(f"Failed to install {tool_name}: {install_path} is missing or not executable")

    found = go_tool_version(install_path)
    if found is None:
        logging.info(f"{tool_name} installed successfully (version check not supported)")
    elif found != bare:
        logging.warning(f"{tool_name} installed, but reports version {found} instead of {requested}")
    else:
        logging.info(f"{tool_name} version {requested} installed successfully to {install_path}")
    return install_path
