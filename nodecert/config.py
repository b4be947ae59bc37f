#! /usr/bin/env python
# vim: expandtab shiftwidth=4 softtabstop=4 tabstop=17 filetype=python :
"""nodecert.config is a helper library that standardizes and collects the logic
in one place used by the nodecert CLI tools/scripts"""

import argparse
import logging
import os
from logging.config import dictConfig

import plaster
import pyramid.paster as paster
from pyramid.settings import asbool

from .models import (
    DEFAULT_KEY_BITS,
    DEFAULT_PREFIX,
    DEFAULT_VALIDITY_DAYS,
    CertificateRequestSpec,
    DistinguishedName,
)

LOG_LEVEL = {
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

DEFAULT_LOGGING_CONFIG = {
    "version": 1,
    "formatters": {
        "generic": {
            "format": "%(asctime)s %(levelname)-5.5s [%(name)s][%(threadName)s]"
            "%(message)s"
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "level": "NOTSET",
            "formatter": "generic",
        },
    },
    "loggers": {
        "": {  # root logger
            "handlers": ["console"],
            "level": "INFO",
        },
        "nodecert": {
            "level": "DEBUG",
            "qualname": "nodecert",
        },
    },
}

# Section of the ini-file holding our settings
SETTINGS_SECTION = "nodecert"

_SUBJECT_DEFAULTS = DistinguishedName()


def add_inifile_argument(parser, env=None):
    """Adds an argument to the parser for the config-file, defaults to
    NODECERT_INI in the environment"""
    if env is None:
        env = os.environ
    default_ini = env.get("NODECERT_INI")

    parser.add_argument(
        "--ini",
        help="Path to a specific .ini-file to use as config",
        dest="inifile",
        default=default_ini,
        type=str,
    )


def add_verbosity_argument(parser):
    """Adds an argument for verbosity to a given parser, counting the amount of
    'v's and 'verbose' on the commandline"""
    parser.add_argument(
        "-v",
        "--verbose",
        help="Verbosity of root logger, increasing the more 'v's are added",
        action="count",
        default=0,
    )


def add_ca_arguments(parser):
    """Adds a ca-cert and ca-key argument to a given parser"""
    parser.add_argument(
        "-1",
        "--ca-cert",
        help="Path to CA certificate to sign with",
        type=str,
    )
    parser.add_argument(
        "-2",
        "--ca-key",
        help="Path to CA key to sign with",
        type=str,
    )


def add_san_arguments(parser):
    """Adds comma separated IP and DNS subjectAltName arguments"""
    parser.add_argument(
        "-3",
        "--ip-sans",
        help="Comma separated IP subjectAltNames",
        type=str,
    )
    parser.add_argument(
        "-4",
        "--dns-sans",
        help="Comma separated DNS subjectAltNames",
        type=str,
    )


def add_subject_arguments(parser):
    """Adds arguments for the subject fields besides the common name"""
    fields = (
        ("-c", "--country", "country (defaults to {})"),
        ("-s", "--state", "state or province (defaults to {})"),
        ("-l", "--locality", "locality (defaults to {})"),
        ("-o", "--organization", "organization (defaults to {})"),
        ("-u", "--orgunit", "organizational unit (defaults to {})"),
    )
    for (short, long, text), default in zip(fields, _SUBJECT_DEFAULTS):
        parser.add_argument(short, long, help=text.format(default), type=str)


def add_key_arguments(parser):
    """Adds arguments for key size, lifetime and usages"""
    parser.add_argument(
        "-b",
        "--bits",
        help="Key size in bits (defaults to {})".format(DEFAULT_KEY_BITS),
        type=int,
    )
    parser.add_argument(
        "-d",
        "--days",
        help="Days until expiry (defaults to {})".format(DEFAULT_VALIDITY_DAYS),
        type=int,
    )
    parser.add_argument(
        "-k",
        "--key-usage",
        help="Key usage (defaults to digitalSignature, keyEncipherment)",
        type=str,
    )
    parser.add_argument(
        "-e",
        "--ext-key-usage",
        help="Extended key usage (defaults to clientAuth, serverAuth)",
        type=str,
    )


def add_output_arguments(parser):
    """Adds the file name prefix and the no-overwrite switch"""
    parser.add_argument(
        "-f",
        "--prefix",
        help="File name prefix (defaults to {})".format(DEFAULT_PREFIX),
        type=str,
    )
    parser.add_argument(
        "-n",
        "--no-overwrite",
        help="Skip generating a certificate and key if one already exists",
        action="store_true",
        default=None,
    )


def _get_config_value(
    arguments: argparse.Namespace,
    variable,
    required=False,
    setting_name=None,
    settings=None,
    default=None,
    env=None,
):
    """Returns what value to use for a given config variable, prefer argument >
    env-variable > config-file, if a value cant be found and default is not
    None, default is returned"""
    result = None
    if setting_name is None:
        setting_name = variable
    if settings is not None:
        result = settings.get(setting_name, result)

    if env is None:
        env = os.environ
    env_var = "NODECERT_" + variable.upper().replace("-", "_")
    result = env.get(env_var, result)

    arg_value = getattr(arguments, variable, result)
    result = arg_value if arg_value is not None else result

    if result is None:
        result = default

    if required and result is None:
        raise ValueError(
            f"No {variable} could be found as either an argument,"
            f" in the environment variable {env_var} or in the config file",
            variable,
            env_var,
        )
    return result


def _get_int(arguments, variable, setting_name, settings, default, env=None):
    value = _get_config_value(
        arguments,
        variable=variable,
        setting_name=setting_name,
        settings=settings,
        default=default,
        env=env,
    )
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{variable} must be a whole number, not {value!r}")


def get_log_level(argument_level, logger=None, env=None):
    """Calculates the highest verbosity(here inverted) from the argument,
    environment and root, capping it to between logging.DEBUG(10)-logging.ERROR(40),
    returning the log level"""

    if env is None:
        env = os.environ
    env_level_name = env.get("NODECERT_LOG_LEVEL", "ERROR").upper()
    env_level = LOG_LEVEL[env_level_name]

    if logger is None:
        logger = logging.getLogger()
    current_level = logger.level

    argument_verbosity = logging.ERROR - argument_level * 10  # level steps are 10
    verbosity = min(argument_verbosity, env_level, current_level)
    log_level = (
        verbosity if logging.DEBUG <= verbosity <= logging.ERROR else logging.ERROR
    )
    return log_level


def configure_log_level(arguments: argparse.Namespace, logger=None):
    """Sets the root loggers level to the highest verbosity from the argument,
    environment and config-file"""
    if logger is None:
        logger = logging.getLogger()
    log_level = get_log_level(arguments.verbose, logger)
    logger.setLevel(log_level)


def get_ca_cert_key_path(arguments: argparse.Namespace, settings=None, required=True):
    """Returns the path to the ca-cert and ca-key to use"""
    ca_cert_path = _get_config_value(
        arguments,
        variable="ca_cert",
        required=required,
        setting_name="ca.cert",
        settings=settings,
    )
    ca_key_path = _get_config_value(
        arguments,
        variable="ca_key",
        required=required,
        setting_name="ca.key",
        settings=settings,
    )
    return ca_cert_path, ca_key_path


def get_subject(arguments: argparse.Namespace, settings=None, env=None):
    """Returns the DistinguishedName to use, field by field"""
    names = ("country", "state", "locality", "organization", "orgunit")
    values = [
        _get_config_value(
            arguments,
            variable=name,
            setting_name="subject." + name,
            settings=settings,
            default=default,
            env=env,
        )
        for name, default in zip(names, _SUBJECT_DEFAULTS)
    ]
    return DistinguishedName(*values)


def get_prefix(arguments: argparse.Namespace, settings=None, env=None):
    """Returns the file name prefix for the key and certificate"""
    return _get_config_value(
        arguments,
        variable="prefix",
        setting_name="file.prefix",
        settings=settings,
        default=DEFAULT_PREFIX,
        env=env,
    )


def get_no_overwrite(arguments: argparse.Namespace, settings=None, env=None):
    """Returns if existing files should be kept rather than replaced"""
    value = _get_config_value(
        arguments,
        variable="no_overwrite",
        setting_name="file.no_overwrite",
        settings=settings,
        default=False,
        env=env,
    )
    return asbool(value)


def get_request_spec(arguments: argparse.Namespace, settings=None, env=None):
    """Assembles the CertificateRequestSpec from arguments, environment and
    config-file"""
    key_usage = _get_config_value(
        arguments,
        variable="key_usage",
        setting_name="key.usage",
        settings=settings,
        default="digitalSignature, keyEncipherment",
        env=env,
    )
    ext_key_usage = _get_config_value(
        arguments,
        variable="ext_key_usage",
        setting_name="key.extended_usage",
        settings=settings,
        default="clientAuth, serverAuth",
        env=env,
    )
    return CertificateRequestSpec(
        common_name=arguments.common_name,
        subject=get_subject(arguments, settings, env),
        key_usage=key_usage,
        extended_key_usage=ext_key_usage,
        ip_sans=_get_config_value(
            arguments,
            variable="ip_sans",
            setting_name="san.ip",
            settings=settings,
            default="",
            env=env,
        ),
        dns_sans=_get_config_value(
            arguments,
            variable="dns_sans",
            setting_name="san.dns",
            settings=settings,
            default="",
            env=env,
        ),
        key_bits=_get_int(
            arguments, "bits", "key.bits", settings, DEFAULT_KEY_BITS, env
        ),
        validity_days=_get_int(
            arguments, "days", "validity.days", settings, DEFAULT_VALIDITY_DAYS, env
        ),
    )


def setup_logging(config_path=None):
    """wrapper for pyramid.paster.setup_logging using file at config.path, if
    no config_path is passed on use dictionary DEFAULT_LOGGING_CONFIG"""
    if config_path:
        paster.setup_logging(config_path)
    else:
        dictConfig(DEFAULT_LOGGING_CONFIG)


def get_settings(config_path):
    """Returns the [nodecert] section of the ini-file at config_path, or an
    empty dict without a config_path"""
    if not config_path:
        return {}
    loader = plaster.get_loader(config_path, protocols=["wsgi"])
    return dict(loader.get_settings(SETTINGS_SECTION))
