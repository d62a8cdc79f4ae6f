# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

"""
YAML loading and saving helpers shared by the overlay and catalog commands.
"""

import logging
import os
import re

import yaml

from konflux_tools.errors import ConfigError


class IndentDumper(yaml.SafeDumper):
    """
    Safe dumper that indents block sequences under their parent key and
    emits multi-line strings as literal blocks.
    """

    def increase_indent(self, flow=False, indentless=False):
        return super(IndentDumper, self).increase_indent(flow, False)


def literal_presenter(dumper, data):
    if "\n" in data:
        return dumper.represent_scalar('tag:yaml.org,2002:str', data, style='|')
    return dumper.represent_scalar('tag:yaml.org,2002:str', data)


IndentDumper.add_representer(str, literal_presenter)


BOOL_TAG = 'tag:yaml.org,2002:bool'
INT_TAG = 'tag:yaml.org,2002:int'
FLOAT_TAG = 'tag:yaml.org,2002:float'
TIMESTAMP_TAG = 'tag:yaml.org,2002:timestamp'


def _drop_resolvers(loader, tags):
    loader.yaml_implicit_resolvers = {
        first: [(tag, regexp) for tag, regexp in resolvers if tag not in tags]
        for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }


class CoreLoader(yaml.SafeLoader):
    """
    Safe loader resolving plain booleans and dates the YAML 1.2 way:
    only true/false are booleans, and timestamps stay strings. yes, no,
    on and off keep their text.
    """


_drop_resolvers(CoreLoader, {BOOL_TAG, TIMESTAMP_TAG})
CoreLoader.add_implicit_resolver(BOOL_TAG, re.compile(r'^(?:true|True|TRUE|false|False|FALSE)$'), list('tTfF'))


class TextLoader(yaml.SafeLoader):
    """Safe loader keeping plain numbers, booleans and dates as their source text."""


_drop_resolvers(TextLoader, {BOOL_TAG, INT_TAG, FLOAT_TAG, TIMESTAMP_TAG})


def load_yaml(file_path, description="YAML", loader=CoreLoader):
    """Load a single YAML document, raising ConfigError when it can't be read."""
    if not os.path.isfile(file_path):
        raise ConfigError(f"{description} file '{file_path}' does not exist.")

    try:
        with open(file_path, 'r') as f:
            return yaml.load(f, Loader=loader)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {description} file {file_path}: {e}") from e


def load_yaml_documents(file_path, description="YAML", loader=CoreLoader):
    """Load every document of a multi-document YAML stream, skipping empty ones."""
    if not os.path.isfile(file_path):
        raise ConfigError(f"{description} file '{file_path}' does not exist.")

    try:
        with open(file_path, 'r') as f:
            return [doc for doc in yaml.load_all(f, Loader=loader) if doc is not None]
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {description} file {file_path}: {e}") from e


def dump_yaml(data, sort_keys=True):
    return yaml.dump(data, Dumper=IndentDumper, default_flow_style=False,
                     sort_keys=sort_keys, allow_unicode=True, width=4096)


def save_yaml(file_path, data, sort_keys=True):
    """Save data back to a YAML file."""
    with open(file_path, "w") as f:
        f.write(dump_yaml(data, sort_keys=sort_keys))
    logging.debug(f"Updated YAML file saved to: {file_path}")


def scalar_text(value):
    """
    Render a release value as the text written into the CSV:
    strings lose their trailing newlines, other values become YAML text.
    """
    if isinstance(value, str):
        return value.rstrip("\n")
    if value is None:
        return ""
    text = yaml.safe_dump(value, default_flow_style=False, sort_keys=False)
    if text.endswith("...\n"):
        text = text[:-len("...\n")]
    return text.rstrip("\n")
