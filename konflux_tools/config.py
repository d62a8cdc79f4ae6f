# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

"""Environment driven defaults for the catalog and download commands."""

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional


@dataclass
class CatalogConfig:
    """Naming of the catalog inputs and of the quay.io/registry.redhat.io bundle images"""
    catalog_template_file: str = ".konflux/catalog/catalog-template.in.yaml"
    bundle_builds_file: str = ".konflux/catalog/bundle.builds.in.yaml"
    catalog_file: str = "catalog.yaml"
    package_name: str = "telco5g-konflux"
    quay_tenant_name: str = "telco-5g-tenant"
    bundle_name_suffix: str = "operator-bundle-4-20"
    production_namespace: str = "openshift4"
    production_bundle_name: str = "operator-bundle"
    engine: str = "docker"
    opm: str = "opm"
    operator_sdk: str = "operator-sdk"
    quay_bundle_image_override: Optional[str] = None
    production_bundle_image_override: Optional[str] = None
    upstream_fbc_image_override: Optional[str] = None

    @property
    def quay_bundle_image(self) -> str:
        if self.quay_bundle_image_override:
            return self.quay_bundle_image_override
        return (f"quay.io/redhat-user-workloads/{self.quay_tenant_name}/"
                f"{self.package_name}-{self.bundle_name_suffix}")

    @property
    def production_bundle_image(self) -> str:
        if self.production_bundle_image_override:
            return self.production_bundle_image_override
        return (f"registry.redhat.io/{self.production_namespace}/"
                f"{self.package_name}-{self.production_bundle_name}")

    @property
    def upstream_fbc_image(self) -> str:
        if self.upstream_fbc_image_override:
            return self.upstream_fbc_image_override
        return (f"quay.io/redhat-user-workloads/{self.quay_tenant_name}/"
                f"{self.package_name}-fbc-4-20:latest")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CatalogConfig":
        env = os.environ if environ is None else environ
        tool_dir = env.get("TOOL_DIR")
        defaults = cls()

        def tool(var, name):
            if env.get(var):
                return env[var]
            if tool_dir:
                return os.path.join(tool_dir, name)
            return name

        return cls(
            catalog_template_file=env.get("CATALOG_TEMPLATE_FILE", defaults.catalog_template_file),
            bundle_builds_file=env.get("BUNDLE_BUILDS_FILE", defaults.bundle_builds_file),
            catalog_file=env.get("CATALOG_FILE", defaults.catalog_file),
            package_name=env.get("PACKAGE_NAME_KONFLUX", defaults.package_name),
            quay_tenant_name=env.get("QUAY_TENANT_NAME", defaults.quay_tenant_name),
            bundle_name_suffix=env.get("BUNDLE_NAME_SUFFIX", defaults.bundle_name_suffix),
            production_namespace=env.get("PRODUCTION_NAMESPACE", defaults.production_namespace),
            production_bundle_name=env.get("PRODUCTION_BUNDLE_NAME", defaults.production_bundle_name),
            engine=env.get("ENGINE", defaults.engine),
            opm=tool("OPM", "opm"),
            operator_sdk=tool("OPERATOR_SDK", "operator-sdk"),
            quay_bundle_image_override=env.get("QUAY_BUNDLE_IMAGE") or None,
            production_bundle_image_override=env.get("PRODUCTION_BUNDLE_IMAGE") or None,
            upstream_fbc_image_override=env.get("UPSTREAM_FBC_IMAGE") or None,
        )


@dataclass
class DownloadConfig:
    """Where tools get installed and which versions are requested"""
    install_dir: str = "bin"
    versions: Dict[str, str] = field(default_factory=dict)

    # environment variables that pin a tool version, e.g. OPERATOR_SDK_VERSION=1.40.0
    VERSION_VARIABLES = {
        "yq": "YQ_VERSION",
        "jq": "JQ_VERSION",
        "opm": "OPM_VERSION",
        "operator-sdk": "OPERATOR_SDK_VERSION",
        "golangci-lint": "GOLANGCI_LINT_VERSION",
        "shellcheck": "SHELLCHECK_VERSION",
    }

    def version_for(self, tool_name: str) -> Optional[str]:
        return self.versions.get(tool_name)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DownloadConfig":
        env = os.environ if environ is None else environ
        install_dir = env.get("INSTALL_DIR") or env.get("TOOL_DIR") or cls.install_dir
        versions = {}
        for tool_name, variable in cls.VERSION_VARIABLES.items():
            if env.get(variable):
                versions[tool_name] = env[variable]
        return cls(install_dir=install_dir, versions=versions)
