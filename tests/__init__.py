#! /usr/bin/env python
# vim: expandtab shiftwidth=4 softtabstop=4 tabstop=17 filetype=python :
import shutil
import tempfile
import unittest

from cryptography import x509

from nodecert.models import SigningCert

from . import fixtures


class CATestCase(unittest.TestCase):
    """Test case with a freshly made CA and a scratch directory"""

    @classmethod
    def setUpClass(cls):
        super(CATestCase, cls).setUpClass()
        cls.ca_cert, cls.ca_key = fixtures.make_ca()
        cls.ca = SigningCert(
            fixtures.cert_pem(cls.ca_cert), fixtures.key_pem(cls.ca_key)
        )

    def setUp(self):
        super(CATestCase, self).setUp()
        self.tmpdir = tempfile.mkdtemp(prefix="nodecert-test-")
        self.addCleanup(shutil.rmtree, self.tmpdir, ignore_errors=True)

    def assertSANs(self, cert, expected, msg=None):
        """SANs as 'DNS:x'/'IP:y' strings, in certificate order"""
        try:
            ext = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        except x509.ExtensionNotFound:
            return self.assertEqual([], expected, msg)
        found = [
            "{}:{}".format("IP" if isinstance(n, x509.IPAddress) else "DNS", n.value)
            for n in ext.value
        ]
        return self.assertEqual(found, expected, msg)

    def assertNoSANExtension(self, cert):
        with self.assertRaises(x509.ExtensionNotFound):
            cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
