# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

VERSION = '0.1.0'

MAP_STAGING = 'staging'
MAP_PRODUCTION = 'production'

# pinning key of the operator manager image
MANAGER_KEY = 'manager'

PRODUCTION_REGISTRY = 'registry.redhat.io'
