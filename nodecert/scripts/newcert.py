#! /usr/bin/env python3
# vim: expandtab shiftwidth=4 softtabstop=4 tabstop=17 filetype=python :
"""Creates a new certificate signed by a CA and writes its private key and
certificate as two PEM-encoded files, server.key and server.crt."""

import argparse
import logging
import os
import sys

import nodecert
from nodecert import certlib, config
from nodecert.config import (
    get_settings,
    setup_logging,
)

LOG = logging.getLogger(name="nodecert.newcert")


def cmdline(argv=None):
    """Parse commandline."""
    parser = argparse.ArgumentParser(description=__doc__)

    parser.add_argument(
        "common_name",
        metavar="COMMON_NAME",
        help="The certificate's common name",
    )
    parser.add_argument(
        "out_dir",
        metavar="OUT_DIR",
        nargs="?",
        default=os.getcwd(),
        help="Directory to write the key and certificate to, "
        "defaults to the working directory",
    )

    config.add_inifile_argument(parser)
    config.add_verbosity_argument(parser)
    config.add_ca_arguments(parser)
    config.add_san_arguments(parser)
    config.add_subject_arguments(parser)
    config.add_key_arguments(parser)
    config.add_output_arguments(parser)

    args = parser.parse_args(argv)
    return args


def error_out(message, exc=None):
    """Log error message and exit with failure code."""
    LOG.error(message)
    if exc is not None:
        LOG.error(str(exc))
    sys.exit(1)


def main(argv=None):
    args = cmdline(argv)
    config_path = args.inifile

    setup_logging(config_path)
    config.configure_log_level(args)

    settings = get_settings(config_path)

    try:
        ca_cert_path, ca_key_path = config.get_ca_cert_key_path(args, settings)
        spec = config.get_request_spec(args, settings)
    except ValueError as error:
        error_out("Invalid configuration", error)

    prefix = config.get_prefix(args, settings)
    skip_existing = config.get_no_overwrite(args, settings)

    try:
        result = nodecert.issue_certificate(
            spec,
            (ca_cert_path, ca_key_path),
            destination=args.out_dir,
            prefix=prefix,
            skip_existing=skip_existing,
        )
    except nodecert.IssueError as error:
        error_out("Failed to issue certificate for {}".format(spec.common_name), error)

    if args.verbose and not result.was_skipped:
        LOG.info(certlib.describe(result.certificate.cert))
    return 0


if __name__ == "__main__":
    sys.exit(main())
