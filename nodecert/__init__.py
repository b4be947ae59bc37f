#! /usr/bin/env python
# vim: expandtab shiftwidth=4 softtabstop=4 tabstop=17 filetype=python :
import logging

from . import certlib, output
from .errors import (  # noqa: F401
    CAKeyMismatch,
    CAUnavailable,
    ErrorKind,
    InvalidSpec,
    IssueError,
    KeyGenerationFailure,
    PersistenceFailure,
    RequestConstructionFailure,
    SigningFailure,
)
from .models import (  # noqa: F401
    DEFAULT_PREFIX,
    CertificateRequestSpec,
    DistinguishedName,
    ExtKeyUsage,
    IssuedCertificate,
    IssueResult,
    IssueStatus,
    KeyUsage,
    SigningCert,
)

LOG = logging.getLogger(__name__)


def issue_certificate(
    spec, ca, destination=".", prefix=DEFAULT_PREFIX, skip_existing=False
):
    """Issue a key and certificate for spec, signed by ca, and write them as
    <prefix>.key and <prefix>.crt in destination.

    ca is a SigningCert, or a (cert path, key path) pair to load one from.
    With skip_existing, an existing key or certificate at the destination
    makes this a no-op returning a skipped result; the existing files are not
    inspected, but spec and CA paths are still checked. Any failure raises an
    IssueError and leaves no new files."""
    template = certlib.build_template(spec)
    if not isinstance(ca, SigningCert):
        SigningCert.check_files(*ca)

    if skip_existing and output.artifacts_exist(destination, prefix):
        LOG.info(
            "Existing %s.crt or %s.key in %s. Skipping cert generation.",
            prefix,
            prefix,
            destination,
        )
        return IssueResult.skipped()

    if not isinstance(ca, SigningCert):
        ca = SigningCert.from_files(*ca)

    key = certlib.generate_key(template.key_bits)
    req = certlib.create_req(template, key)
    cert = certlib.sign_req(req, ca, template.validity_days)

    issued = IssuedCertificate(key, cert)
    issued.key_path, issued.cert_path = output.write_files(
        destination, prefix, issued.key_pem, issued.cert_pem
    )
    LOG.info(
        "Issued %s serial %x, signed by %s",
        spec.common_name,
        issued.serial_number,
        ca.subject.rfc4514_string(),
    )
    return IssueResult.success(issued)
