# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

"""
CSV overlay: pins operator images by digest, regenerates the related images,
overlays release metadata and remaps images to another container registry.

The steps always run in this order:

    pin images -> add related images -> overlay release -> map images -> sort keys

Mapping has to run after the release overlay so the images injected by it
(containerImage, recert image) are remapped too, and sorting the keys is
always the final action so the output is stable.
"""

import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional

from konflux_tools import MAP_PRODUCTION, MAP_STAGING
from konflux_tools.errors import ConfigError, OverlayError
from konflux_tools.images import is_pinned, replace_in_strings, strip_digest
from konflux_tools.release import overlay_release, parse_release_file
from konflux_tools.yaml_utils import load_yaml, save_yaml

MAP_TARGETS = (MAP_STAGING, MAP_PRODUCTION)


@dataclass
class PinnedImage:
    """A logical image name with the reference to replace and its pinned (sha256) reference"""
    key: str
    source: str
    target: str


@dataclass
class RegistryMapping:
    """Digest-less image references of a logical image on the staging and production registries"""
    key: str
    staging: Optional[str] = None
    production: Optional[str] = None

    def target_for(self, map_target: str) -> Optional[str]:
        if map_target == MAP_STAGING:
            return self.staging
        if map_target == MAP_PRODUCTION:
            return self.production
        raise ConfigError(f"unknown mapping target: {map_target}")


def _read_entries(file_path, description, fields):
    entries = load_yaml(file_path, description) or []
    if not isinstance(entries, list):
        raise ConfigError(f"{description} file {file_path} must contain a list of entries")

    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigError(f"entry {i} of {description} file {file_path} is not a mapping")
        missing = [f for f in fields if entry.get(f) in (None, "")]
        if missing:
            raise ConfigError(f"entry {i} of {description} file {file_path} is missing: {', '.join(missing)}")
    return entries


def parse_pinning_file(pinning_file) -> List[PinnedImage]:
    """
    Read the pinning file, a list of {key, source, target} entries.

    The order of the entries is kept: it is the order in which the images are
    pinned and in which .spec.relatedImages is regenerated.
    """
    logging.info("Parsing pinning file...")

    entries = _read_entries(pinning_file, "pinning", ("key", "source", "target"))
    pins = [PinnedImage(str(e["key"]), str(e["source"]), str(e["target"])) for e in entries]

    for pin in pins:
        logging.debug(f"- key: {pin.key}")
        logging.debug(f"  source: {pin.source}")
        logging.debug(f"  target: {pin.target}")

    logging.info("Parsing pinning file completed!")
    return pins


def parse_mapping_file(mapping_file) -> Dict[str, RegistryMapping]:
    """Read the mapping file, a list of {key, staging, production} entries. The first entry of a key wins."""
    logging.info("Parsing mapping image file...")

    mappings = {}
    for e in _read_entries(mapping_file, "mapping", ("key",)):
        key = str(e["key"])
        if key in mappings:
            logging.warning(f"Duplicate mapping for key: {key}, keeping the first one")
            continue
        mappings[key] = RegistryMapping(
            key,
            str(e["staging"]) if e.get("staging") else None,
            str(e["production"]) if e.get("production") else None)

    logging.info("Parsing mapping image file completed!")
    return mappings


def pin_images(csv, pins):
    """Replace every source reference with its pinned target across the CSV."""
    logging.info("Pinning images (sha256)...")

    for pin in pins:
        logging.info(f"Replacing: image_name: {pin.key}, source: {pin.source}, target: {pin.target}")
        _, count = replace_in_strings(csv, pin.source, pin.target)
        logging.debug(f"{count} value(s) updated for {pin.key}")

    logging.info("Pinning images completed!")


def add_related_images(csv, pins):
    """Drop .spec.relatedImages and rebuild it from the pinned images, in pinning order."""
    logging.info("Adding related images...")

    spec = csv.get("spec")
    if not isinstance(spec, dict):
        spec = {}
        csv["spec"] = spec

    logging.info("Removing .spec.relatedImages")
    spec.pop("relatedImages", None)

    related_images = []
    for pin in pins:
        logging.info(f"Adding related image: name: {pin.key} source: {pin.source}, image: {pin.target}")
        related_images.append({"name": pin.key, "image": pin.target})
    if related_images:
        spec["relatedImages"] = related_images

    logging.info("Adding related images completed!")


def map_images(csv, pins, mappings, map_target):
    """
    Move the pinned images to the staging or production registry.

    Requires the images to be pinned already ('...@sha256:...'): the digest is
    kept and only the part before it is replaced.

    Raises:
        OverlayError: If a pinned target carries no digest
    """
    logging.info("Mapping images ...")

    for pin in pins:
        if not is_pinned(pin.target):
            raise OverlayError(f"mapping requires an image already pinned (sha256 format): "
                               f"{pin.key}: {pin.target}")

        original = strip_digest(pin.target)
        mapping = mappings.get(pin.key)
        mapped = mapping.target_for(map_target) if mapping else None
        if not mapped:
            logging.warning(f"no {map_target} image mapped for: {pin.key}")
            continue

        logging.info(f"Replacing: image_name: {pin.key}, original: {original}, mapped: {mapped}")
        replace_in_strings(csv, original, mapped)

    logging.info("Mapping images completed!")


class BundleOverlay:
    """
    Overlay an operator CSV as configured by a pinning file, an optional
    release file and an optional registry mapping file.
    """

    def __init__(self, csv_file, pinning_file=None, release_file=None,
                 mapping_file=None, map_target=None):
        self.csv_file = csv_file
        self.pinning_file = pinning_file
        self.release_file = release_file
        self.mapping_file = mapping_file
        self.map_target = map_target
        self.validate()

    def validate(self):
        logging.info("Validating overlay arguments...")

        if not self.csv_file:
            raise ConfigError("specify '--set-csv-file' with the cluster service version file.")

        for path in (self.csv_file, self.pinning_file, self.release_file):
            if path and not os.path.isfile(path):
                raise ConfigError(f"file '{path}' does not exist.")

        if self.map_target is not None and self.map_target not in MAP_TARGETS:
            raise ConfigError(f"unknown mapping target: {self.map_target}")

        if self.map_target:
            if not self.mapping_file:
                raise ConfigError("specify '--set-mapping-file' to use a container registry map file.")
            if not os.path.isfile(self.mapping_file):
                raise ConfigError(f"file '{self.mapping_file}' does not exist.")

        if self.mapping_file and not self.map_target:
            raise ConfigError("specify '--set-mapping-staging' or '--set-mapping-production'.")

        logging.info("Validating overlay arguments completed!")

    def apply(self, csv):
        """Run every overlay step on a loaded CSV document and return it."""
        if not isinstance(csv, dict):
            raise OverlayError(f"CSV file {self.csv_file} does not contain a YAML mapping")

        pins = []
        if self.pinning_file:
            pins = parse_pinning_file(self.pinning_file)
            pin_images(csv, pins)
            add_related_images(csv, pins)
        else:
            logging.info("Skipping images pinning!")

        if self.release_file:
            overlay_release(csv, parse_release_file(self.release_file), pins)
        else:
            logging.info("Skipping release overlay!")

        # this MUST always be the last transformation
        if self.mapping_file:
            map_images(csv, pins, parse_mapping_file(self.mapping_file), self.map_target)
        else:
            logging.info("Skipping images mapping!")

        return csv

    def run(self):
        csv = self.apply(load_yaml(self.csv_file, "CSV"))

        logging.info("Sorting YAML keys for consistent output...")
        save_yaml(self.csv_file, csv, sort_keys=True)
        logging.info(f"CSV overlay written to: {self.csv_file}")
        return csv
