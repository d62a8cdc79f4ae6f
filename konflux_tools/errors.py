# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

class KonfluxToolsError(Exception):
    pass

class ConfigError(KonfluxToolsError):
    pass

class OverlayError(KonfluxToolsError):
    pass

class ReleaseVariableError(OverlayError):
    pass

class CatalogError(KonfluxToolsError):
    pass

class ValidationError(CatalogError):
    pass

class ToolError(KonfluxToolsError):
    pass

class DownloadError(ToolError):
    pass
