#! /usr/bin/env python
# vim: expandtab shiftwidth=4 softtabstop=4 tabstop=17 filetype=python :
"""Where issued keys and certificates end up on disk."""

import logging
import os
import tempfile

from .errors import PersistenceFailure

LOG = logging.getLogger(__name__)

KEY_SUFFIX = ".key"
CERT_SUFFIX = ".crt"
KEY_MODE = 0o600
CERT_MODE = 0o644


def artifact_paths(destination, prefix):
    """(key path, cert path) for prefix in destination"""
    base = os.path.join(destination, prefix)
    return base + KEY_SUFFIX, base + CERT_SUFFIX


def artifacts_exist(destination, prefix):
    """True if either the key or the certificate is already present.
    Only presence is checked, the files are never opened."""
    for path in artifact_paths(destination, prefix):
        if os.path.exists(path):
            LOG.debug("Found existing %s", path)
            return True
    return False


def _write_temp(directory, data, mode):
    fd, name = tempfile.mkstemp(dir=directory, prefix=".nodecert-", suffix=".tmp")
    try:
        os.fchmod(fd, mode)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except BaseException:
        _unlink_quietly(name)
        raise
    return name


def _unlink_quietly(path):
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError:
        LOG.warning("Could not remove %s", path, exc_info=True)


def write_files(destination, prefix, key_pem, cert_pem):
    """Write key and certificate so that both land or neither does.

    Both are staged as temporary files next to their final names and then
    renamed into place. On failure everything written by this call is removed,
    along with any older file left beside it, and PersistenceFailure raised."""
    key_path, cert_path = artifact_paths(destination, prefix)
    staged = []
    placed = []
    try:
        os.makedirs(destination, exist_ok=True)
        staged.append((_write_temp(destination, key_pem, KEY_MODE), key_path))
        staged.append((_write_temp(destination, cert_pem, CERT_MODE), cert_path))
        for temp, final in staged:
            os.replace(temp, final)
            placed.append(final)
    except OSError as error:
        for temp, final in staged:
            if final not in placed:
                _unlink_quietly(temp)
        if placed:
            # once one file is replaced, neither file stays
            for final in (key_path, cert_path):
                _unlink_quietly(final)
        raise PersistenceFailure(
            "Cannot write {}: {}".format(error.filename or destination, error.strerror)
        ) from error

    LOG.info("Wrote key to %s", key_path)
    LOG.info("Wrote cert to %s", cert_path)
    return key_path, cert_path
