# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

"""
Release file vocabulary for the CSV overlay.

A release file carries a `variables` mapping. Only the variables listed in
RELEASE_VARIABLES_ALLOWED are accepted, and each one is applied to the CSV
by its handler in RELEASE_HANDLERS.
"""

import logging
from collections import OrderedDict

import yaml

from konflux_tools import MANAGER_KEY
from konflux_tools.errors import ReleaseVariableError
from konflux_tools.yaml_utils import TextLoader, load_yaml, scalar_text

RELEASE_VARIABLES_ALLOWED = (
    "annotations",
    "alm_examples",
    "containerImage",
    "description",
    "display_name",
    "manager_version",
    "min_kube_version",
    "recert_image",
    "subscription_badges",
    "version",
)

PLACEHOLDER_CONTAINER_IMAGE = "PLACEHOLDER_CONTAINER_IMAGE"
PLACEHOLDER_RECERT_IMAGE = "PLACEHOLDER_RECERT_IMAGE"

RECERT_IMAGE_KEY = "recert_image"
RECERT_IMAGE_ENV = "RELATED_IMAGE_RECERT_IMAGE"

SUBSCRIPTION_ANNOTATION = "operators.openshift.io/valid-subscription"


def parse_release_file(release_file):
    """
    Read the `variables` of a release file.

    Args:
        release_file (str): Path to the release YAML file

    Returns:
        OrderedDict: Variable name to raw value, in file order

    Raises:
        ReleaseVariableError: If a variable is not in the allow-list
    """
    logging.info("Parsing release file...")

    release = load_yaml(release_file, "release", loader=TextLoader) or {}
    if not isinstance(release, dict):
        raise ReleaseVariableError(f"Release file {release_file} must be a mapping")

    variables = release.get("variables") or {}
    if not isinstance(variables, dict):
        raise ReleaseVariableError(f".variables in {release_file} must be a mapping")

    configured = OrderedDict()
    for name, value in variables.items():
        if name not in RELEASE_VARIABLES_ALLOWED:
            raise ReleaseVariableError(f"Variable '{name}' is not allowed in {release_file}")
        configured[name] = value
        logging.debug(f"RELEASE_VARIABLES_CONFIGURED, key: {name}, value: {value}")

    logging.info("Parsing release file completed!")
    return configured


def _mapping(parent, key):
    child = parent.get(key)
    if not isinstance(child, dict):
        child = {}
        parent[key] = child
    return child


def _annotations(csv):
    return _mapping(_mapping(csv, "metadata"), "annotations")


def _spec(csv):
    return _mapping(csv, "spec")


def _pinned_target(pins, key, name):
    for pin in pins:
        if pin.key == key:
            return pin.target
    raise ReleaseVariableError(f"no {name} image pinned for key: {key}. Check the pinning file")


def set_alm_examples(csv, value, pins):
    _annotations(csv)["alm-examples"] = scalar_text(value)


def merge_annotations(csv, value, pins):
    extra = value
    if isinstance(value, str):
        try:
            extra = yaml.load(value, Loader=TextLoader)
        except yaml.YAMLError as e:
            raise ReleaseVariableError(f"annotations value is not valid YAML: {e}") from e
    if extra is None:
        return
    if not isinstance(extra, dict):
        raise ReleaseVariableError("annotations value must be a YAML mapping")
    _annotations(csv).update(extra)


def set_container_image(csv, value, pins):
    image = scalar_text(value)
    if image == PLACEHOLDER_CONTAINER_IMAGE:
        image = _pinned_target(pins, MANAGER_KEY, "manager")
    _annotations(csv)["containerImage"] = image


def set_description(csv, value, pins):
    # multi-line values are dumped as a literal block
    _spec(csv)["description"] = scalar_text(value)


def set_display_name(csv, value, pins):
    _spec(csv)["displayName"] = scalar_text(value)


def set_manager_version(csv, value, pins):
    _mapping(csv, "metadata")["name"] = scalar_text(value)


def set_min_kube_version(csv, value, pins):
    _spec(csv)["minKubeVersion"] = scalar_text(value)


def add_recert_image(csv, value, pins):
    image = scalar_text(value)
    if image == PLACEHOLDER_RECERT_IMAGE:
        image = _pinned_target(pins, RECERT_IMAGE_KEY, "recert")

    try:
        deployment = csv["spec"]["install"]["spec"]["deployments"][0]
        container = deployment["spec"]["template"]["spec"]["containers"][0]
    except (KeyError, IndexError, TypeError) as e:
        raise ReleaseVariableError("CSV has no deployment container to add the recert image to") from e

    env = container.get("env") or []
    env = [var for var in env if var.get("name") != RECERT_IMAGE_ENV]
    env.append({"name": RECERT_IMAGE_ENV, "value": image})
    container["env"] = env


def set_subscription_badges(csv, value, pins):
    _annotations(csv)[SUBSCRIPTION_ANNOTATION] = scalar_text(value)


def set_version(csv, value, pins):
    _spec(csv)["version"] = scalar_text(value)


RELEASE_HANDLERS = {
    "alm_examples": set_alm_examples,
    "annotations": merge_annotations,
    "containerImage": set_container_image,
    "description": set_description,
    "display_name": set_display_name,
    "manager_version": set_manager_version,
    "min_kube_version": set_min_kube_version,
    "recert_image": add_recert_image,
    "subscription_badges": set_subscription_badges,
    "version": set_version,
}


def overlay_release(csv, variables, pins):
    """
    Apply the configured release variables to a CSV document.

    `.spec.replaces` and the `olm.skipRange` annotation are always removed:
    upgrade edges are managed through the catalog template instead.

    Args:
        csv (dict): Loaded CSV document, modified in place
        variables (dict): Release variables as returned by parse_release_file
        pins (list): PinnedImage entries used to resolve placeholders
    """
    logging.info("Overlaying release...")

    logging.info("Removing '.spec.replaces' and '.metadata.annotations[\"olm.skipRange\"]'")
    spec = csv.get("spec")
    if isinstance(spec, dict):
        spec.pop("replaces", None)
    annotations = (csv.get("metadata") or {}).get("annotations")
    if isinstance(annotations, dict):
        annotations.pop("olm.skipRange", None)

    for name, value in variables.items():
        handler = RELEASE_HANDLERS.get(name)
        if handler is None:
            raise ReleaseVariableError(f"no handler defined for release variable: {name}")

        logging.debug(f"RELEASE_VARIABLES_CONFIGURED, Key: {name}, Value: {value}")
        try:
            handler(csv, value, pins)
        except ReleaseVariableError as e:
            raise ReleaseVariableError(f"failed to set release variable: {name}: {e}") from e

    logging.info("Overlaying release completed!")
