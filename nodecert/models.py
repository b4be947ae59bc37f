#! /usr/bin/env python
# vim: expandtab shiftwidth=4 softtabstop=4 tabstop=17 filetype=python :
"""Value types passed between the stages of certificate issuing."""

import collections as _collections
import enum as _enum
import ipaddress as _ipaddress
import os as _os

from cryptography import x509 as _x509
from cryptography.hazmat.primitives import serialization as _serialization
from cryptography.x509.oid import (
    ExtendedKeyUsageOID as _EKU,
    NameOID as _NameOID,
)
from OpenSSL import SSL as _SSL
from OpenSSL import crypto as _crypto
from pyramid.decorator import reify as _reify

from .errors import CAKeyMismatch, CAUnavailable, InvalidSpec


DEFAULT_KEY_BITS = 2048
DEFAULT_VALIDITY_DAYS = 3650
DEFAULT_PREFIX = "server"


def _parse_names(value, enum_cls):
    """Accept an OpenSSL style comma separated string, or an iterable of
    names/members, and return a frozenset of enum_cls members"""
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = [v.strip() for v in value.split(",")]
    members = set()
    for item in value:
        if isinstance(item, enum_cls):
            members.add(item)
            continue
        if not item:
            continue
        try:
            members.add(enum_cls(item))
        except ValueError:
            raise InvalidSpec(
                "Unknown {} {!r}".format(enum_cls.__name__, item)
            ) from None
    return frozenset(members)


class KeyUsage(_enum.Enum):
    digitalSignature = "digitalSignature"
    nonRepudiation = "nonRepudiation"
    keyEncipherment = "keyEncipherment"
    dataEncipherment = "dataEncipherment"
    keyAgreement = "keyAgreement"
    keyCertSign = "keyCertSign"
    cRLSign = "cRLSign"
    encipherOnly = "encipherOnly"
    decipherOnly = "decipherOnly"

    @classmethod
    def parse(cls, value):
        return _parse_names(value, cls)


# KeyUsage name => keyword of cryptography's x509.KeyUsage
_KEY_USAGE_FIELDS = {
    KeyUsage.digitalSignature: "digital_signature",
    KeyUsage.nonRepudiation: "content_commitment",
    KeyUsage.keyEncipherment: "key_encipherment",
    KeyUsage.dataEncipherment: "data_encipherment",
    KeyUsage.keyAgreement: "key_agreement",
    KeyUsage.keyCertSign: "key_cert_sign",
    KeyUsage.cRLSign: "crl_sign",
    KeyUsage.encipherOnly: "encipher_only",
    KeyUsage.decipherOnly: "decipher_only",
}


class ExtKeyUsage(_enum.Enum):
    serverAuth = "serverAuth"
    clientAuth = "clientAuth"
    codeSigning = "codeSigning"
    emailProtection = "emailProtection"
    timeStamping = "timeStamping"
    OCSPSigning = "OCSPSigning"

    @classmethod
    def parse(cls, value):
        return _parse_names(value, cls)

    @property
    def oid(self):
        return _EXT_KEY_USAGE_OIDS[self]


_EXT_KEY_USAGE_OIDS = {
    ExtKeyUsage.serverAuth: _EKU.SERVER_AUTH,
    ExtKeyUsage.clientAuth: _EKU.CLIENT_AUTH,
    ExtKeyUsage.codeSigning: _EKU.CODE_SIGNING,
    ExtKeyUsage.emailProtection: _EKU.EMAIL_PROTECTION,
    ExtKeyUsage.timeStamping: _EKU.TIME_STAMPING,
    ExtKeyUsage.OCSPSigning: _EKU.OCSP_SIGNING,
}

DEFAULT_KEY_USAGE = frozenset(
    (KeyUsage.digitalSignature, KeyUsage.keyEncipherment)
)
DEFAULT_EXT_KEY_USAGE = frozenset(
    (ExtKeyUsage.clientAuth, ExtKeyUsage.serverAuth)
)


# Subject attribs, in order.
ATTRIBS_TO_KEEP = ("C", "ST", "L", "O", "OU", "CN")
_NAME_OIDS = {
    "C": _NameOID.COUNTRY_NAME,
    "ST": _NameOID.STATE_OR_PROVINCE_NAME,
    "L": _NameOID.LOCALITY_NAME,
    "O": _NameOID.ORGANIZATION_NAME,
    "OU": _NameOID.ORGANIZATIONAL_UNIT_NAME,
    "CN": _NameOID.COMMON_NAME,
}


class DistinguishedName(
    _collections.namedtuple(
        "DistinguishedName",
        "country state_or_province locality organization organizational_unit",
        defaults=("US", "California", "Palo Alto", "VMware", "CAPV"),
    )
):
    """Subject fields other than the common name. Empty fields are left
    out of the issued subject."""

    __slots__ = ()

    def components(self, common_name):
        values = dict(zip(ATTRIBS_TO_KEEP, self + (common_name,)))
        return tuple((k, values[k]) for k in ATTRIBS_TO_KEEP if values[k])

    def to_name(self, common_name):
        country = self.country
        if country and len(country) != 2:
            raise InvalidSpec("Country codes are two letters")
        try:
            return _x509.Name(
                [
                    _x509.NameAttribute(_NAME_OIDS[k], v)
                    for k, v in self.components(common_name)
                ]
            )
        except ValueError as error:
            raise InvalidSpec(str(error)) from error


class SubjectAltNameKinds(_enum.Enum):
    DNS = "DNS"
    IP = "IP"


class SubjectAltName(object):
    """One subjectAltName entry, DNS or IP.

    DNS names keep the spelling they were given; only names with non-ASCII
    labels are converted, to IDNA A-labels. Entries compare equal when their
    normalised forms do."""

    def __init__(self, kind, value):
        if not isinstance(kind, SubjectAltNameKinds):
            raise ValueError("Unsupported subjectAltName kind {}".format(kind))
        self.kind = kind
        if kind is SubjectAltNameKinds.DNS:
            self.value = self.clean_dns(value)
        else:
            self.value = self.convert_ip(value)

    @classmethod
    def dns(cls, value):
        return cls(SubjectAltNameKinds.DNS, value)

    @classmethod
    def ip(cls, value):
        return cls(SubjectAltNameKinds.IP, value)

    @staticmethod
    def convert_ip(value):
        address = _ipaddress.ip_address(str(value).strip())
        if address.version == 6:
            return address.exploded
        return str(address)

    @staticmethod
    def clean_dns(value):
        """DNS name as given, without surrounding blanks or the root dot.
        Raises ValueError for binary input, empty names and labels longer
        than 63 octets once encoded."""
        if not isinstance(value, str):
            raise ValueError("DNS names must be text, not {!r}".format(value))
        value = value.strip().rstrip(".")
        if not value:
            raise ValueError("Empty DNS name")
        # UnicodeError is a ValueError
        value.encode("idna")
        return value

    @classmethod
    def convert_dns(cls, value):
        """ASCII form of a DNS name for the certificate"""
        if isinstance(value, bytes):
            value = value.decode("ascii")
        value = cls.clean_dns(value)
        if value.isascii():
            return value
        return value.encode("idna").decode("ascii")

    @classmethod
    def normalise_dns(cls, value):
        """Lower-cased A-label form, the one DNS names are compared in"""
        return cls.convert_dns(value).lower()

    @property
    def _key(self):
        if self.kind is SubjectAltNameKinds.DNS:
            return self.kind, self.normalise_dns(self.value)
        return self.kind, self.value

    def general_name(self):
        if self.kind is SubjectAltNameKinds.DNS:
            return _x509.DNSName(self.convert_dns(self.value))
        return _x509.IPAddress(_ipaddress.ip_address(self.value))

    def __eq__(self, other):
        if not isinstance(other, SubjectAltName):
            return NotImplemented
        return self._key == other._key

    def __hash__(self):
        return hash(self._key)

    def __str__(self):
        return "{}:{}".format(self.kind.value, self.value)

    def __bytes__(self):
        if self.kind is SubjectAltNameKinds.DNS:
            value = self.convert_dns(self.value)
        else:
            value = self.value
        return "{}:{}".format(self.kind.value, value).encode("ascii")

    def __repr__(self):
        return "<{0.__class__.__name__} {0}>".format(self)


def _as_tuple(value):
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(v.strip() for v in value.split(",") if v.strip())
    return tuple(value)


class CertificateRequestSpec(
    _collections.namedtuple(
        "CertificateRequestSpec",
        "common_name subject key_usage extended_key_usage"
        " ip_sans dns_sans key_bits validity_days",
    )
):
    """Everything needed to request one leaf certificate.

    Comma separated strings are accepted for the usages and the SAN lists,
    in the same form the OpenSSL config takes them."""

    __slots__ = ()

    def __new__(
        cls,
        common_name,
        subject=None,
        key_usage=DEFAULT_KEY_USAGE,
        extended_key_usage=DEFAULT_EXT_KEY_USAGE,
        ip_sans=(),
        dns_sans=(),
        key_bits=DEFAULT_KEY_BITS,
        validity_days=DEFAULT_VALIDITY_DAYS,
    ):
        return super(CertificateRequestSpec, cls).__new__(
            cls,
            common_name=(common_name or "").strip(),
            subject=subject if subject is not None else DistinguishedName(),
            key_usage=KeyUsage.parse(key_usage),
            extended_key_usage=ExtKeyUsage.parse(extended_key_usage),
            ip_sans=_as_tuple(ip_sans),
            dns_sans=_as_tuple(dns_sans),
            key_bits=key_bits,
            validity_days=validity_days,
        )

    @property
    def has_sans(self):
        return bool(self.ip_sans or self.dns_sans)


class CertTemplate(
    _collections.namedtuple(
        "CertTemplate",
        "name key_usage extended_key_usage subject_alt_names"
        " key_bits validity_days",
    )
):
    """Subject and requested extensions, ready to be bound to a key."""

    __slots__ = ()

    def key_usage_extension(self):
        flags = {field: False for field in _KEY_USAGE_FIELDS.values()}
        for usage in self.key_usage:
            flags[_KEY_USAGE_FIELDS[usage]] = True
        return _x509.KeyUsage(**flags)

    def extended_key_usage_extension(self):
        # frozensets are unordered; keep the output stable
        oids = sorted(
            (usage.oid for usage in self.extended_key_usage),
            key=lambda oid: oid.dotted_string,
        )
        return _x509.ExtendedKeyUsage(oids)

    def extensions(self, public_key):
        """(extension, critical) pairs for a request carrying public_key"""
        extensions = [
            (_x509.BasicConstraints(ca=False, path_length=None), False),
        ]
        if self.key_usage:
            extensions.append((self.key_usage_extension(), False))
        if self.extended_key_usage:
            extensions.append((self.extended_key_usage_extension(), False))
        extensions.append(
            (_x509.SubjectKeyIdentifier.from_public_key(public_key), False)
        )
        if self.subject_alt_names:
            names = [san.general_name() for san in self.subject_alt_names]
            extensions.append((_x509.SubjectAlternativeName(names), False))
        return extensions


class SigningCert(object):
    """Data class to wrap signing key + cert"""

    def __init__(self, cert, key, password=None):
        try:
            self.cert = _x509.load_pem_x509_certificate(_as_bytes(cert))
        except ValueError as error:
            raise CAUnavailable("CA certificate cannot be parsed") from error
        try:
            self.key = _serialization.load_pem_private_key(
                _as_bytes(key), password=_as_bytes(password)
            )
        except (ValueError, TypeError) as error:
            raise CAUnavailable("CA private key cannot be parsed") from error

    @staticmethod
    def check_files(certfile, keyfile):
        """Raise CAUnavailable unless both paths name existing files"""
        for path in (certfile, keyfile):
            if not path:
                raise CAUnavailable("Both CA certificate and key are required")
            if not _os.path.isfile(path):
                raise CAUnavailable("Cannot find {}".format(path))

    @classmethod
    def from_files(cls, certfile, keyfile, password=None):
        cls.check_files(certfile, keyfile)
        try:
            with open(keyfile, "rb") as f:
                key = f.read()
            with open(certfile, "rb") as f:
                cert = f.read()
        except OSError as error:
            raise CAUnavailable(
                "Cannot read {}: {}".format(error.filename, error.strerror)
            ) from error

        return cls(cert, key, password)

    @_reify
    def subject(self):
        return self.cert.subject

    def verify_key_pair(self):
        """Raise CAKeyMismatch unless the key belongs to the certificate"""
        context = _SSL.Context(_SSL.TLS_METHOD)
        # only key correspondence is checked here, not key strength
        context.set_cipher_list(b"ALL:@SECLEVEL=0")
        try:
            context.use_certificate(_crypto.X509.from_cryptography(self.cert))
            context.use_privatekey(_crypto.PKey.from_cryptography_key(self.key))
            context.check_privatekey()
        except (_SSL.Error, TypeError) as error:
            raise CAKeyMismatch(
                "CA private key does not match the CA certificate"
            ) from error

    def __repr__(self):
        return "<{0.__class__.__name__} {1}>".format(
            self, self.subject.rfc4514_string()
        )


def _as_bytes(value):
    if isinstance(value, str):
        return value.encode("utf8")
    return value


class IssuedCertificate(object):
    """A freshly signed certificate and its private key"""

    def __init__(self, key, cert, key_path=None, cert_path=None):
        self.key = key
        self.cert = cert
        self.key_path = key_path
        self.cert_path = cert_path

    @_reify
    def key_pem(self):
        return self.key.private_bytes(
            encoding=_serialization.Encoding.PEM,
            format=_serialization.PrivateFormat.PKCS8,
            encryption_algorithm=_serialization.NoEncryption(),
        )

    @_reify
    def cert_pem(self):
        return self.cert.public_bytes(_serialization.Encoding.PEM)

    @property
    def serial_number(self):
        return self.cert.serial_number

    @property
    def common_name(self):
        attrs = self.cert.subject.get_attributes_for_oid(_NameOID.COMMON_NAME)
        return attrs[0].value if attrs else None

    def subject_alt_names(self):
        """SANs in certificate order, as 'DNS:…'/'IP:…' strings"""
        try:
            ext = self.cert.extensions.get_extension_for_class(
                _x509.SubjectAlternativeName
            )
        except _x509.ExtensionNotFound:
            return []
        result = []
        for name in ext.value:
            if isinstance(name, _x509.IPAddress):
                result.append("IP:{}".format(name.value))
            else:
                result.append("DNS:{}".format(name.value))
        return result

    def __repr__(self):
        return "<{0.__class__.__name__} CN={0.common_name!r} serial={1:x}>".format(
            self, self.serial_number
        )


class IssueStatus(_enum.Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"


class IssueResult(
    _collections.namedtuple("IssueResult", "status certificate")
):
    __slots__ = ()

    @classmethod
    def success(cls, certificate):
        return cls(IssueStatus.SUCCESS, certificate)

    @classmethod
    def skipped(cls):
        return cls(IssueStatus.SKIPPED, None)

    @property
    def was_skipped(self):
        return self.status is IssueStatus.SKIPPED
