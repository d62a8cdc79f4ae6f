# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

"""
Thin wrappers around the external tools the catalog commands drive
(opm, operator-sdk, podman).
"""

import logging
import os
import shutil
import subprocess
import time

from konflux_tools.errors import ToolError


def require_tool(tool):
    """Return the resolved path of a tool, raising ToolError if it can't be found."""
    if os.path.sep in tool:
        if os.path.isfile(tool) and os.access(tool, os.X_OK):
            return tool
    else:
        path = shutil.which(tool)
        if path:
            return path
    raise ToolError(f"{tool} seems not to be installed.")


def run_tool(cmd, timeout=None, retries=1, stdout=None, cwd=None, env=None):
    """
    Execute an external tool and return the completed process.

    Args:
        cmd (list): Command and arguments
        timeout (int, optional): Seconds before the command is aborted
        retries (int, optional): Number of attempts before giving up
        stdout (file, optional): Stream receiving stdout instead of capturing it
        cwd (str, optional): Working directory of the command
        env (dict, optional): Environment of the command, defaults to the current one

    Raises:
        ToolError: If the tool is missing, times out or exits non-zero
    """
    logging.debug(f"Running: {' '.join(cmd)}")

    last_error = None
    for attempt in range(retries):
        try:
            if stdout is not None:
                return subprocess.run(cmd, stdout=stdout, stderr=subprocess.PIPE,
                                      text=True, check=True, timeout=timeout, cwd=cwd, env=env)
            return subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout,
                                  cwd=cwd, env=env)
        except FileNotFoundError as e:
            raise ToolError(f"{cmd[0]} seems not to be installed.") from e
        except subprocess.TimeoutExpired:
            last_error = f"Timeout after {timeout}s"
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            last_error = f"exit code {e.returncode}" + (f": {stderr}" if stderr else "")

        if attempt < retries - 1:
            logging.warning(f"Attempt {attempt + 1}/{retries} of '{cmd[0]}' failed ({last_error}), retrying...")
            time.sleep(2)

    raise ToolError(f"'{' '.join(cmd)}' failed: {last_error}")
