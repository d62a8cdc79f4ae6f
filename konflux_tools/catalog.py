# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

"""
File-Based Catalog (FBC) helpers: catalog template update, catalog rendering
and validation, production overlay of the bundle image and comparison with
an upstream FBC image.
"""

import difflib
import glob
import hashlib
import json
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from typing import List

from konflux_tools import PRODUCTION_REGISTRY
from konflux_tools.errors import CatalogError, ConfigError, ValidationError
from konflux_tools.tools import require_tool, run_tool
from konflux_tools.yaml_utils import load_yaml, load_yaml_documents, save_yaml

PRODUCTION_PREFIX = f"{PRODUCTION_REGISTRY}/"


def _last_entry(template, template_file):
    entries = template.get("entries") if isinstance(template, dict) else None
    if not isinstance(entries, list):
        raise CatalogError(f".entries in {template_file} is not a valid array.")
    if not entries:
        raise CatalogError(f".entries in {template_file} is empty.")
    return entries[-1]


def read_bundle_build(bundle_builds_file):
    builds = load_yaml(bundle_builds_file, "bundle builds")
    quay = builds.get("quay") if isinstance(builds, dict) else None
    if not quay:
        raise CatalogError(f"No .quay key found in {bundle_builds_file} or value is null.")
    return str(quay)


def update_catalog_template(template_file, bundle_builds_file, output_file=None):
    """
    Point the last entry of a catalog template to the newly built bundle.

    Args:
        template_file (str): Catalog template to read
        bundle_builds_file (str): YAML file whose `.quay` key holds the bundle image
        output_file (str, optional): Where to write the result, defaults to template_file

    Returns:
        str: The bundle image written into the template
    """
    logging.info("Validating catalog template input file...")
    template = load_yaml(template_file, "catalog template")
    last_entry = _last_entry(template, template_file)
    if not isinstance(last_entry, dict) or not last_entry.get("image"):
        # reported but not fatal: the entry gets its image below
        logging.error(f"Last element in .entries array of {template_file} is missing the image field or it is null.")
        if not isinstance(last_entry, dict):
            raise CatalogError(f"Last element in .entries array of {template_file} is not a mapping.")
    logging.info("Validating catalog template input file completed!")

    logging.info("Updating catalog template file...")
    output_file = output_file or template_file
    if os.path.abspath(output_file) != os.path.abspath(template_file):
        logging.info(f"Copying catalog template from {template_file} to {output_file}")
        shutil.copy(template_file, output_file)

    bundle_quay = read_bundle_build(bundle_builds_file)
    last_entry["image"] = bundle_quay
    save_yaml(output_file, template, sort_keys=False)
    logging.info(f"Updated catalog template file: {output_file} with bundle: {bundle_quay}")

    logging.info("Updating catalog template file completed!")
    return bundle_quay


def detect_file_type(file_path):
    """Return 'json' or 'yaml' from the file extension, falling back to the first non-blank character."""
    lowered = file_path.lower()
    if lowered.endswith((".json", ".jsonl")):
        return "json"
    if lowered.endswith((".yaml", ".yml")):
        return "yaml"

    with open(file_path, 'r') as f:
        first_char = f.read(1).strip()
    if first_char == "{":
        return "json"
    # '-' or '#' is yaml, and so is anything we can't tell
    return "yaml"


def load_json_stream(text):
    """Decode a JSON document, a JSONL file or a stream of concatenated JSON objects."""
    decoder = json.JSONDecoder()
    objects = []
    pos = 0
    while True:
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos >= len(text):
            break
        obj, pos = decoder.raw_decode(text, pos)
        objects.append(obj)
    return objects


def load_catalog(catalog_file):
    """Load every object (FBC blob) of a JSON or YAML catalog file."""
    if not os.path.isfile(catalog_file):
        raise ConfigError(f"file '{catalog_file}' does not exist.")

    if detect_file_type(catalog_file) == "json":
        with open(catalog_file, 'r') as f:
            try:
                return load_json_stream(f.read())
            except json.JSONDecodeError as e:
                raise ConfigError(f"Failed to parse JSON catalog {catalog_file}: {e}") from e
    return load_yaml_documents(catalog_file, "catalog")


def collect_related_images(catalog_file):
    """Return every relatedImages[].image of the catalog, in file order."""
    found = False
    images = []
    for blob in load_catalog(catalog_file):
        if not isinstance(blob, dict) or not isinstance(blob.get("relatedImages"), list):
            continue
        found = True
        for related in blob["relatedImages"]:
            if isinstance(related, dict) and related.get("image"):
                images.append(str(related["image"]))

    if not found:
        raise ValidationError(f".relatedImages in {catalog_file} is not a valid array or not found.")
    return images


def validate_related_images_production(catalog_file, prefix=PRODUCTION_PREFIX):
    """
    Check that every related image of a catalog points to the production registry.

    Raises:
        ValidationError: If there are no related images or any of them is not a production image
    """
    logging.info("Validating related images...")

    images = collect_related_images(catalog_file)
    if not images:
        raise ValidationError(f"No related images found in {catalog_file}")

    invalid = []
    for image in images:
        if image.startswith(prefix):
            logging.info(f"Valid production image found: {image}")
        else:
            logging.error(f"{image} is not a valid image reference for production. Check bundle overlay.")
            invalid.append(image)

    if invalid:
        raise ValidationError(f"{len(invalid)} related image(s) in {catalog_file} are not production images: "
                              f"{', '.join(invalid)}")

    logging.info("Validating related images completed!")
    return images


def overlay_production_bundle(catalog_file, quay_bundle_image, production_bundle_image, validate=True):
    """
    Rewrite the quay.io bundle image of a rendered catalog into its production
    name, keeping the digest, then make sure only production images remain.

    Returns:
        int: Number of bundle references rewritten
    """
    logging.info("Overlaying bundle image for production...")
    logging.info(f"  From: {quay_bundle_image}")
    logging.info(f"  To: {production_bundle_image}")

    with open(catalog_file, 'r') as f:
        text = f.read()

    pattern = re.compile(re.escape(quay_bundle_image) + r"(@sha256:[a-f0-9]*)")
    text, count = pattern.subn(lambda m: production_bundle_image + m.group(1), text)

    with open(catalog_file, 'w') as f:
        f.write(text)
    logging.info(f"Rewrote {count} bundle reference(s) in {catalog_file}")

    # from now on, all the related images must reference production exclusively
    if validate:
        validate_related_images_production(catalog_file)
    return count


def generate_catalog(template_file, bundle_builds_file, catalog_file, opm="opm"):
    """Update the catalog template with the latest bundle and render it with opm."""
    update_catalog_template(template_file, bundle_builds_file)

    opm = require_tool(opm)
    catalog_dir = os.path.dirname(catalog_file)
    if catalog_dir:
        os.makedirs(catalog_dir, exist_ok=True)

    logging.info(f"Rendering catalog template {template_file} into {catalog_file}")
    with open(catalog_file, 'w') as f:
        run_tool([opm, "alpha", "render-template", "basic",
                  "--output", "yaml",
                  "--migrate-level", "bundle-object-to-csv-metadata",
                  template_file], stdout=f)


def validate_catalog(catalog_file, opm="opm"):
    catalog_dir = os.path.dirname(catalog_file) or "."
    logging.info(f"validating catalog: {catalog_dir}")
    run_tool([require_tool(opm), "validate", catalog_dir])


def validate_catalog_template_bundle(template_file, operator_sdk="operator-sdk", engine="docker"):
    """Validate the bundle of the last catalog template entry with operator-sdk."""
    last_entry = _last_entry(load_yaml(template_file, "catalog template"), template_file)
    bundle = last_entry.get("image") if isinstance(last_entry, dict) else None
    if not bundle:
        raise CatalogError(f"Last element in .entries array of {template_file} is missing the image field or it is null.")

    logging.info(f"validating the last bundle entry: {bundle} on catalog template: {template_file}")
    run_tool([require_tool(operator_sdk), "bundle", "validate", f"--image-builder={engine}", bundle])
    return bundle


@dataclass
class CatalogComparison:
    generated_file: str
    upstream_file: str
    generated_lines: int
    upstream_lines: int
    generated_checksum: str
    upstream_checksum: str
    diff: List[str] = field(default_factory=list)

    @property
    def matches(self) -> bool:
        return self.generated_checksum == self.upstream_checksum


def _file_stats(file_path):
    with open(file_path, 'rb') as f:
        data = f.read()
    return data.count(b"\n"), hashlib.md5(data).hexdigest()


def resolve_catalog_file(catalog_path):
    if not os.path.exists(catalog_path):
        raise CatalogError(f"Catalog path does not exist: {catalog_path}")
    if os.path.isdir(catalog_path):
        catalog_file = os.path.join(catalog_path, "catalog.yaml")
        if not os.path.isfile(catalog_file):
            raise CatalogError(f"catalog.yaml not found in directory: {catalog_path}")
        return catalog_file
    return catalog_path


def compare_files(generated_file, upstream_file):
    generated_lines, generated_checksum = _file_stats(generated_file)
    upstream_lines, upstream_checksum = _file_stats(upstream_file)

    comparison = CatalogComparison(generated_file, upstream_file,
                                   generated_lines, upstream_lines,
                                   generated_checksum, upstream_checksum)
    if not comparison.matches:
        with open(upstream_file, 'r') as f:
            upstream = f.readlines()
        with open(generated_file, 'r') as f:
            generated = f.readlines()
        comparison.diff = list(difflib.unified_diff(upstream, generated,
                                                    fromfile=upstream_file, tofile=generated_file))
    return comparison


def extract_upstream_catalog(upstream_image, extract_dir, podman="podman"):
    """Pull an FBC image and copy its /configs into extract_dir, returning the extracted catalog.yaml."""
    podman = require_tool(podman)

    logging.debug(f"Pulling upstream image: {upstream_image}")
    run_tool([podman, "pull", upstream_image])

    logging.debug("Extracting catalog from upstream image")
    run_tool([podman, "run", "--rm", "--entrypoint", "/bin/sh",
              "-v", f"{extract_dir}:/tmp/extract", upstream_image,
              "-c", "cp -r /configs/* /tmp/extract/"])

    found = sorted(glob.glob(os.path.join(extract_dir, "**", "catalog.yaml"), recursive=True))
    if not found:
        raise CatalogError("No catalog.yaml found in upstream image")
    logging.debug(f"Found upstream catalog: {found[0]}")
    return found[0]


def compare_catalog(catalog_path, upstream_image, temp_dir=None, cleanup=True, podman="podman"):
    """
    Compare a generated catalog with the catalog shipped in an upstream FBC image.

    Args:
        catalog_path (str): Catalog file, or directory holding catalog.yaml
        upstream_image (str): FBC image to compare against
        temp_dir (str, optional): Directory used for the extraction, a new one is created if not given
        cleanup (bool): Remove the extracted files afterwards

    Returns:
        CatalogComparison: Line counts, checksums and unified diff
    """
    catalog_file = resolve_catalog_file(catalog_path)

    created = temp_dir is None
    if created:
        temp_dir = tempfile.mkdtemp()
        logging.debug(f"Created temporary directory: {temp_dir}")
    os.makedirs(temp_dir, exist_ok=True)
    extract_dir = os.path.join(temp_dir, "upstream-fbc-extract")
    os.makedirs(extract_dir, exist_ok=True)

    logging.info(f"Comparing catalog: {catalog_file}")
    logging.info(f"Against upstream image: {upstream_image}")
    try:
        upstream_file = extract_upstream_catalog(upstream_image, extract_dir, podman)
        comparison = compare_files(catalog_file, upstream_file)
    finally:
        if cleanup:
            logging.debug(f"Cleaning up temporary directory: {temp_dir}")
            shutil.rmtree(temp_dir if created else extract_dir, ignore_errors=True)

    logging.info(f"Generated catalog lines: {comparison.generated_lines}")
    logging.info(f"Upstream catalog lines: {comparison.upstream_lines}")
    logging.info(f"Generated catalog checksum: {comparison.generated_checksum}")
    logging.info(f"Upstream catalog checksum: {comparison.upstream_checksum}")
    return comparison
