#! /usr/bin/env python3
# vim: expandtab shiftwidth=4 softtabstop=4 tabstop=17 filetype=python :
"""Building, requesting and signing leaf certificates."""

import datetime
import logging
import uuid

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa
from dateutil.relativedelta import relativedelta

from .errors import (
    InvalidSpec,
    KeyGenerationFailure,
    RequestConstructionFailure,
    SigningFailure,
)
from .models import CertTemplate, SubjectAltName

LOG = logging.getLogger(__name__)

PUBLIC_EXPONENT = 65537
MIN_BITS = 2048
SUPPORTED_BITS = (2048, 3072, 4096, 8192)
# Bit strength => hash strength. Based on hash strenghts
HASH = {2048: hashes.SHA256, 3072: hashes.SHA384, 4096: hashes.SHA512}

# Upper bound from RFC 5280
_UB_CN_LEN = 64


def build_template(spec):
    """Turn a CertificateRequestSpec into a CertTemplate.

    The common name always leads the SAN list, once, whenever any SAN was
    requested. With no SANs requested the template carries none at all."""
    if not spec.common_name:
        raise InvalidSpec("A common name is required")
    if len(spec.common_name) > _UB_CN_LEN:
        raise InvalidSpec(
            "Common name is longer than {} characters".format(_UB_CN_LEN)
        )
    if spec.key_bits not in SUPPORTED_BITS:
        raise InvalidSpec(
            "Unsupported key size {!r}, use one of {}".format(
                spec.key_bits, SUPPORTED_BITS
            )
        )
    if not isinstance(spec.validity_days, int) or spec.validity_days <= 0:
        raise InvalidSpec(
            "Validity must be a positive number of days, not {!r}".format(
                spec.validity_days
            )
        )
    try:
        validity_period(spec.validity_days)
    except (OverflowError, ValueError) as error:
        raise InvalidSpec(
            "Validity of {} days ends past year 9999".format(spec.validity_days)
        ) from error

    sans = ()
    if spec.has_sans:
        try:
            sans = _ordered_sans(spec)
        except ValueError as error:
            raise InvalidSpec("Invalid subjectAltName: {}".format(error)) from error

    template = CertTemplate(
        name=spec.subject.to_name(spec.common_name),
        key_usage=spec.key_usage,
        extended_key_usage=spec.extended_key_usage,
        subject_alt_names=sans,
        key_bits=spec.key_bits,
        validity_days=spec.validity_days,
    )
    # encipherOnly and decipherOnly need keyAgreement
    if template.key_usage:
        try:
            template.key_usage_extension()
        except ValueError as error:
            raise InvalidSpec(str(error)) from error

    LOG.debug(
        "Template for %s: key usage %s, extended key usage %s, SANs %s",
        template.name.rfc4514_string(),
        sorted(u.value for u in template.key_usage),
        sorted(u.value for u in template.extended_key_usage),
        [str(san) for san in sans] or "none",
    )
    return template


def _ordered_sans(spec):
    common_name = SubjectAltName.dns(spec.common_name)
    sans = [common_name]
    for name in spec.dns_sans:
        san = SubjectAltName.dns(name)
        if san != common_name:
            sans.append(san)
    sans.extend(SubjectAltName.ip(address) for address in spec.ip_sans)
    return tuple(sans)


def generate_key(bits):
    """Generate a fresh RSA key. Nothing is written anywhere."""
    if bits not in SUPPORTED_BITS or bits < MIN_BITS:
        raise KeyGenerationFailure("Unsupported key size {!r}".format(bits))
    try:
        key = rsa.generate_private_key(
            public_exponent=PUBLIC_EXPONENT, key_size=bits
        )
    except (ValueError, UnsupportedAlgorithm) as error:
        raise KeyGenerationFailure(str(error)) from error
    LOG.debug("Generated %d bit RSA key", bits)
    return key


def hash_for(key):
    """The signature hash to use with a private key, None for EdDSA"""
    if isinstance(key, rsa.RSAPrivateKey):
        for bits in sorted(HASH, reverse=True):
            if key.key_size >= bits:
                return HASH[bits]()
        return hashes.SHA256()
    if isinstance(key, ec.EllipticCurvePrivateKey):
        if key.curve.key_size > 384:
            return hashes.SHA512()
        if key.curve.key_size > 256:
            return hashes.SHA384()
        return hashes.SHA256()
    if isinstance(key, (ed25519.Ed25519PrivateKey, ed448.Ed448PrivateKey)):
        return None
    raise UnsupportedAlgorithm(
        "Unsupported key type {}".format(type(key).__name__)
    )


def create_req(template, key):
    """Build a CSR for template, self-signed with key"""
    builder = x509.CertificateSigningRequestBuilder().subject_name(template.name)
    try:
        for extension, critical in template.extensions(key.public_key()):
            builder = builder.add_extension(extension, critical=critical)
        req = builder.sign(key, hash_for(key))
    except (ValueError, TypeError, UnsupportedAlgorithm) as error:
        raise RequestConstructionFailure(str(error)) from error
    LOG.debug("Created request for %s", req.subject.rfc4514_string())
    return req


def validity_period(days, now=None):
    """(not_before, not_after) starting now, days long, at second precision"""
    if now is None:
        now = datetime.datetime.now(tz=datetime.timezone.utc)
    not_before = now.replace(microsecond=0)
    return not_before, not_before + relativedelta(days=days)


def sign_req(req, ca, validity_days, serial=None):
    """Takes a CSR, signs it with the CA and returns the certificate.

    Subject and extensions come from the request unchanged, the issuer and
    authority key identifier from the CA."""
    if not req.is_signature_valid:
        raise RequestConstructionFailure("Request signature does not verify")

    ca.verify_key_pair()

    if serial is None:
        # uuid1 is time based and does not repeat within a process
        serial = int(uuid.uuid1())
    try:
        not_before, not_after = validity_period(validity_days)
    except (OverflowError, ValueError, TypeError) as error:
        raise SigningFailure(
            "Invalid validity of {!r} days".format(validity_days)
        ) from error

    builder = (
        x509.CertificateBuilder()
        .subject_name(req.subject)
        .issuer_name(ca.cert.subject)
        .public_key(req.public_key())
        .serial_number(serial)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
    )
    try:
        for extension in req.extensions:
            builder = builder.add_extension(
                extension.value, critical=extension.critical
            )
        builder = builder.add_extension(_authority_key_identifier(ca), critical=False)
        cert = builder.sign(ca.key, hash_for(ca.key))
    except (ValueError, TypeError, UnsupportedAlgorithm) as error:
        raise SigningFailure(str(error)) from error

    try:
        cert.verify_directly_issued_by(ca.cert)
    except (ValueError, TypeError, InvalidSignature) as error:
        raise SigningFailure(
            "Issued certificate does not verify against the CA"
        ) from error

    LOG.debug(
        "Signed %s serial %x valid %s to %s",
        cert.subject.rfc4514_string(),
        serial,
        not_before.isoformat(),
        not_after.isoformat(),
    )
    return cert


def _authority_key_identifier(ca):
    try:
        ski = ca.cert.extensions.get_extension_for_class(x509.SubjectKeyIdentifier)
    except x509.ExtensionNotFound:
        return x509.AuthorityKeyIdentifier.from_issuer_public_key(
            ca.cert.public_key()
        )
    return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(
        ski.value
    )


def describe(cert):
    """Multi-line human readable summary of a certificate"""
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        names = ", ".join(
            "{}:{}".format("IP" if isinstance(n, x509.IPAddress) else "DNS", n.value)
            for n in san.value
        )
    except x509.ExtensionNotFound:
        names = "none"
    lines = (
        "Subject: {}".format(cert.subject.rfc4514_string()),
        "Issuer: {}".format(cert.issuer.rfc4514_string()),
        "Serial: {:x}".format(cert.serial_number),
        "Not before: {}".format(cert.not_valid_before_utc.isoformat()),
        "Not after: {}".format(cert.not_valid_after_utc.isoformat()),
        "Subject alternative names: {}".format(names),
    )
    return "\n".join(lines)
