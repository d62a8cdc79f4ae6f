# Copyright (c) 2025 Red Hat, Inc.
# Copyright Contributors to the Open Cluster Management project

"""
konflux-tools: bundle overlay, catalog and tooling helpers for operators
built with Konflux.

Usage:
  # Pin, overlay and map a CSV for production
  konflux-tools bundle-overlay --set-csv-file bundle/manifests/op.clusterserviceversion.yaml \\
      --set-pinning-file .konflux/overlay/pin_images.in.yaml \\
      --set-mapping-file .konflux/overlay/map_images.in.yaml --set-mapping-production \\
      --set-release-file .konflux/overlay/release.in.yaml

  # Point the catalog template to the latest bundle build and render the catalog
  konflux-tools generate-catalog

  # Install a pinned tool version into ./bin
  konflux-tools download operator-sdk --version 1.40.0
"""

import argparse
import logging
import sys

import coloredlogs

from konflux_tools import MAP_PRODUCTION, MAP_STAGING, VERSION
from konflux_tools import catalog, download, rpm_lock
from konflux_tools.config import CatalogConfig, DownloadConfig
from konflux_tools.errors import KonfluxToolsError
from konflux_tools.overlay import BundleOverlay


def log_header(message, *args):
    """
    Logs a header message with visual separators.
    Args:
        message (str): The message to be displayed as the header.
        *args: Additional arguments to be passed into the message string.
    """
    formatted_message = message.format(*args)
    separator = "=" * len(formatted_message)

    logging.info("")
    logging.info(separator)
    logging.info(formatted_message)
    logging.info(separator)


def bundle_overlay(args):
    log_header("Bundle overlay: {}", args.csv_file)
    overlay = BundleOverlay(args.csv_file,
                            pinning_file=args.pinning_file,
                            release_file=args.release_file,
                            mapping_file=args.mapping_file,
                            map_target=args.map_target)
    overlay.run()
    return 0


def update_catalog_template(args):
    config = CatalogConfig.from_env()
    template_input = args.template_input_file or args.template_file or config.catalog_template_file
    template_output = args.template_output_file or args.template_file or template_input
    catalog.update_catalog_template(template_input,
                                    args.bundle_builds_file or config.bundle_builds_file,
                                    template_output)
    return 0


def validate_related_images_production(args):
    catalog.validate_related_images_production(args.catalog_file or CatalogConfig.from_env().catalog_file)
    return 0


def overlay_catalog_production(args):
    config = CatalogConfig.from_env()
    catalog.overlay_production_bundle(args.catalog_file or config.catalog_file,
                                      args.quay_bundle_image or config.quay_bundle_image,
                                      args.production_bundle_image or config.production_bundle_image)
    return 0


def generate_catalog(args):
    config = CatalogConfig.from_env()
    log_header("Generating catalog: {}", args.catalog_file or config.catalog_file)
    catalog.generate_catalog(args.template_file or config.catalog_template_file,
                             args.bundle_builds_file or config.bundle_builds_file,
                             args.catalog_file or config.catalog_file,
                             opm=args.opm or config.opm)
    return 0


def validate_catalog(args):
    config = CatalogConfig.from_env()
    catalog.validate_catalog(args.catalog_file or config.catalog_file, opm=args.opm or config.opm)
    return 0


def validate_catalog_template_bundle(args):
    config = CatalogConfig.from_env()
    catalog.validate_catalog_template_bundle(args.template_file or config.catalog_template_file,
                                             operator_sdk=args.operator_sdk or config.operator_sdk,
                                             engine=args.engine or config.engine)
    return 0


def compare_catalog(args):
    config = CatalogConfig.from_env()
    comparison = catalog.compare_catalog(args.catalog_path,
                                         args.upstream_image or config.upstream_fbc_image,
                                         temp_dir=args.temp_dir,
                                         cleanup=not args.no_cleanup)
    if comparison.matches:
        print("✅ Catalogs are identical")
        return 0

    print("❌ Catalogs differ")
    print(f"Generated: {comparison.generated_lines} lines, checksum {comparison.generated_checksum}")
    print(f"Upstream:  {comparison.upstream_lines} lines, checksum {comparison.upstream_checksum}")
    sys.stdout.writelines(comparison.diff)
    return 1


def download_tool(args):
    config = DownloadConfig.from_env()
    install_dir = args.install_dir or config.install_dir
    for tool_name in args.tools:
        log_header("Installing {}", tool_name)
        download.ensure_tool(tool_name,
                             args.version or config.version_for(tool_name),
                             install_dir=install_dir,
                             force=args.force)
    return 0


def download_go_tool(args):
    install_dir = args.install_dir or DownloadConfig.from_env().install_dir
    log_header("Installing {}", args.tool_name)
    download.ensure_go_tool(args.tool_name, args.go_module, install_dir=install_dir, force=args.force)
    return 0


def filter_unused_repos(args):
    sys.stdout.write(rpm_lock.filter_repo_file(args.repo_file))
    return 0


def register_bundle_overlay_subcommand(subparser):
    parser = subparser.add_parser('bundle-overlay',
                                  help='pin images, overlay release metadata and map images of a CSV')
    parser.add_argument('--set-csv-file', dest='csv_file', required=True,
                        help='the cluster service version file, updated in place')
    parser.add_argument('--set-pinning-file', dest='pinning_file', default=None,
                        help='the image pinning file ({key, source, target} entries)')
    parser.add_argument('--set-release-file', dest='release_file', default=None,
                        help='the release variables file')
    parser.add_argument('--set-mapping-file', dest='mapping_file', default=None,
                        help='the container registry map file ({key, staging, production} entries)')
    target = parser.add_mutually_exclusive_group()
    target.add_argument('--set-mapping-staging', dest='map_target', action='store_const', const=MAP_STAGING,
                        help='map the pinned images to the staging registry')
    target.add_argument('--set-mapping-production', dest='map_target', action='store_const', const=MAP_PRODUCTION,
                        help='map the pinned images to the production registry')
    parser.set_defaults(func=bundle_overlay, map_target=None)


def register_update_catalog_template_subcommand(subparser):
    parser = subparser.add_parser('update-catalog-template',
                                  help='point the last catalog template entry to the latest bundle build')
    parser.add_argument('--set-catalog-template-file', dest='template_file', default=None,
                        help='the catalog template, used as both input and output')
    parser.add_argument('--set-catalog-template-input-file', dest='template_input_file', default=None,
                        help='the catalog template to read')
    parser.add_argument('--set-catalog-template-output-file', dest='template_output_file', default=None,
                        help='where to write the updated catalog template; defaults to the input file')
    parser.add_argument('--set-bundle-builds-file', dest='bundle_builds_file', default=None,
                        help='the bundle builds file holding the .quay bundle reference')
    parser.set_defaults(func=update_catalog_template)


def register_validate_related_images_subcommand(subparser):
    parser = subparser.add_parser('validate-related-images-production',
                                  help='check that every related image of a catalog is a production image')
    parser.add_argument('--set-catalog-file', dest='catalog_file', default=None,
                        help='the rendered catalog, JSON or YAML')
    parser.set_defaults(func=validate_related_images_production)


def register_overlay_catalog_production_subcommand(subparser):
    parser = subparser.add_parser('overlay-catalog-production',
                                  help='rewrite the quay.io bundle image of a catalog into its production name')
    parser.add_argument('--set-catalog-file', dest='catalog_file', default=None,
                        help='the rendered catalog, updated in place')
    parser.add_argument('--quay-bundle-image', dest='quay_bundle_image', default=None,
                        help='the bundle repository built on quay.io, without tag or digest')
    parser.add_argument('--production-bundle-image', dest='production_bundle_image', default=None,
                        help='the production bundle repository, without tag or digest')
    parser.set_defaults(func=overlay_catalog_production)


def register_generate_catalog_subcommand(subparser):
    parser = subparser.add_parser('generate-catalog',
                                  help='update the catalog template and render it with opm')
    parser.add_argument('--set-catalog-template-file', dest='template_file', default=None)
    parser.add_argument('--set-bundle-builds-file', dest='bundle_builds_file', default=None)
    parser.add_argument('--set-catalog-file', dest='catalog_file', default=None)
    parser.add_argument('--opm', dest='opm', default=None, help='the opm binary to use')
    parser.set_defaults(func=generate_catalog)


def register_validate_catalog_subcommand(subparser):
    parser = subparser.add_parser('validate-catalog',
                                  help='run opm validate on the catalog directory')
    parser.add_argument('--set-catalog-file', dest='catalog_file', default=None)
    parser.add_argument('--opm', dest='opm', default=None, help='the opm binary to use')
    parser.set_defaults(func=validate_catalog)


def register_validate_catalog_template_bundle_subcommand(subparser):
    parser = subparser.add_parser('validate-catalog-template-bundle',
                                  help='run operator-sdk bundle validate on the last catalog template entry')
    parser.add_argument('--set-catalog-template-file', dest='template_file', default=None)
    parser.add_argument('--operator-sdk', dest='operator_sdk', default=None,
                        help='the operator-sdk binary to use')
    parser.add_argument('--engine', dest='engine', default=None,
                        help='the image builder used by operator-sdk (docker or podman)')
    parser.set_defaults(func=validate_catalog_template_bundle)


def register_compare_catalog_subcommand(subparser):
    parser = subparser.add_parser('compare-catalog',
                                  help='compare a generated catalog with the one of an upstream FBC image')
    parser.add_argument('--catalog-path', dest='catalog_path', default='.konflux/catalog',
                        help='the generated catalog file, or the directory holding catalog.yaml')
    parser.add_argument('--upstream-image', dest='upstream_image', default=None,
                        help='the upstream FBC image to compare against')
    parser.add_argument('--temp-dir', dest='temp_dir', default=None,
                        help='the directory used to extract the upstream catalog')
    parser.add_argument('--no-cleanup', dest='no_cleanup', action='store_true',
                        help='keep the extracted upstream catalog')
    parser.add_argument('--verbose', dest='verbose', action='store_true',
                        help='enable debug logging')
    parser.set_defaults(func=compare_catalog)


def register_download_subcommand(subparser):
    parser = subparser.add_parser('download',
                                  help='download and install tool binaries with version pinning')
    parser.add_argument('tools', nargs='+', choices=sorted(download.TOOLS),
                        help='the tools to install')
    parser.add_argument('--version', dest='version', default=None,
                        help='the version to install; defaults to the <TOOL>_VERSION variable or the pinned version')
    parser.add_argument('--install-dir', dest='install_dir', default=None,
                        help='where to install the binaries; defaults to $INSTALL_DIR or ./bin')
    parser.add_argument('--force', dest='force', action='store_true',
                        help='download even if an acceptable version is already installed')
    parser.set_defaults(func=download_tool)


def register_download_go_tool_subcommand(subparser):
    parser = subparser.add_parser('download-go-tool',
                                  help='install a go tool with go install, pinned to the module version')
    parser.add_argument('tool_name', help='the binary produced by go install, e.g. controller-gen')
    parser.add_argument('go_module',
                        help='the module to install with its version (module@version)')
    parser.add_argument('--install-dir', dest='install_dir', default=None,
                        help='where to install the binary; defaults to $INSTALL_DIR or ./bin')
    parser.add_argument('--force', dest='force', action='store_true',
                        help='install even if the requested version is already installed')
    parser.set_defaults(func=download_go_tool)


def register_filter_unused_repos_subcommand(subparser):
    parser = subparser.add_parser('filter-unused-repos',
                                  help='print only the enabled repositories of a redhat.repo file')
    parser.add_argument('repo_file', help='the path to the redhat.repo file')
    parser.set_defaults(func=filter_unused_repos)


def parse_args(argv):
    parser = argparse.ArgumentParser(prog='konflux-tools',
                                     description='Bundle overlay, catalog and tooling helpers for Konflux builds')
    parser.add_argument('-v', '--version', action='version',
                        version='%(prog)s {}'.format(VERSION))
    parser.add_argument('--debug', dest='debug', action='store_true',
                        help='enable debug logging')

    # add all subparsers
    subparser = parser.add_subparsers(dest='command')
    for func in [
        register_bundle_overlay_subcommand,
        register_update_catalog_template_subcommand,
        register_validate_related_images_subcommand,
        register_overlay_catalog_production_subcommand,
        register_generate_catalog_subcommand,
        register_validate_catalog_subcommand,
        register_validate_catalog_template_bundle_subcommand,
        register_compare_catalog_subcommand,
        register_download_subcommand,
        register_download_go_tool_subcommand,
        register_filter_unused_repos_subcommand,
    ]:
        func(subparser)
    args = parser.parse_args(argv[1:])

    return parser, args


def main(argv=None):
    argv = sys.argv if argv is None else argv
    parser, args = parse_args(argv)
    if not getattr(args, 'func', None):
        parser.print_help()
        return 1

    debug = args.debug or getattr(args, 'verbose', False)
    coloredlogs.install(level='DEBUG' if debug else 'INFO')

    try:
        return args.func(args)
    except KonfluxToolsError as e:
        logging.error(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
