# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

"""
Image reference parsing and substitution utilities.
"""

import re


def parse_image_ref(image_ref):
    """
    Parse an image reference and extract its components.

    Args:
        image_ref (str): Full image reference (e.g., "registry/repo:tag@digest")

    Returns:
        dict: Dictionary containing parsed components:
            - registry_and_ns: Registry and namespace portion
            - repository: Repository name
            - tag: Image tag
            - digest: Image digest (if present)
    """
    # Image ref:  [registry-and-ns/]repository-name[:tag][@digest]
    parsed_ref = dict()

    remaining_ref = image_ref
    at_pos = remaining_ref.rfind("@")
    if at_pos > 0:
        parsed_ref["digest"] = remaining_ref[at_pos+1:]
        remaining_ref = remaining_ref[0:at_pos]
    else:
        parsed_ref["digest"] = None

    # A colon before the last slash belongs to a registry port, not a tag
    colon_pos = remaining_ref.rfind(":")
    if colon_pos > 0 and colon_pos > remaining_ref.rfind("/"):
        parsed_ref["tag"] = remaining_ref[colon_pos+1:]
        remaining_ref = remaining_ref[0:colon_pos]
    else:
        parsed_ref["tag"] = None

    slash_pos = remaining_ref.rfind("/")
    if slash_pos > 0:
        parsed_ref["registry_and_ns"] = remaining_ref[0:slash_pos]
        parsed_ref["repository"] = remaining_ref[slash_pos+1:]
    else:
        parsed_ref["registry_and_ns"] = None
        parsed_ref["repository"] = remaining_ref

    return parsed_ref


def strip_digest(image_ref):
    """Return the reference without its trailing '@digest' part, if any."""
    at_pos = image_ref.rfind("@")
    if at_pos < 0:
        return image_ref
    return image_ref[0:at_pos]


def is_pinned(image_ref):
    return parse_image_ref(image_ref)["digest"] is not None


def substitution_pattern(old, new):
    """
    Build the pattern used to replace `old` with `new`. When `new` extends
    `old` (e.g. a tag-less reference pinned to a digest), occurrences already
    followed by the extension are left alone so repeated runs don't stack
    suffixes.
    """
    pattern = re.escape(old)
    if new.startswith(old) and new != old:
        pattern += f"(?!{re.escape(new[len(old):])})"
    return re.compile(pattern)


def replace_in_strings(node, old, new):
    """
    Replace every occurrence of `old` with `new` in all string scalars of a
    loaded YAML/JSON tree. Containers are modified in place.

    Returns:
        tuple: (new_node, count) where count is the number of scalars changed
    """
    if not old or old == new:
        return node, 0
    return _replace(node, substitution_pattern(old, new), new)


def _replace(node, pattern, new):
    if isinstance(node, str):
        replaced, n = pattern.subn(lambda _: new, node)
        return replaced, 1 if n else 0

    count = 0
    if isinstance(node, dict):
        for key in list(node.keys()):
            node[key], changed = _replace(node[key], pattern, new)
            count += changed
    elif isinstance(node, list):
        for i, item in enumerate(node):
            node[i], changed = _replace(item, pattern, new)
            count += changed
    return node, count
