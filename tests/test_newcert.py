#! /usr/bin/env python
# vim: expandtab shiftwidth=4 softtabstop=4 tabstop=17 filetype=python :
"""Tests for the nodecert console script"""
import os
from unittest import mock

from cryptography import x509

from nodecert.scripts import newcert

from . import CATestCase, fixtures


class TestNewCert(CATestCase):
    def setUp(self):
        super(TestNewCert, self).setUp()
        self.ca_cert_path, self.ca_key_path = fixtures.write_ca(
            self.tmpdir, self.ca_cert, self.ca_key
        )
        self.out_dir = os.path.join(self.tmpdir, "out")
        # keep the test runner's logging alone
        patcher = mock.patch.object(newcert, "setup_logging")
        patcher.start()
        self.addCleanup(patcher.stop)
        patcher = mock.patch.dict(os.environ, clear=False)
        patcher.start()
        self.addCleanup(patcher.stop)
        for name in list(os.environ):
            if name.startswith("NODECERT_"):
                del os.environ[name]

    def run_main(self, *argv):
        return newcert.main(
            ["-1", self.ca_cert_path, "-2", self.ca_key_path] + list(argv)
        )

    def load_cert(self, prefix="server"):
        with open(os.path.join(self.out_dir, prefix + ".crt"), "rb") as f:
            return x509.load_pem_x509_certificate(f.read())

    def test_issues(self):
        status = self.run_main(
            "-3", "10.0.0.5", "-4", "node1", "-d", "365", "node1.local", self.out_dir
        )
        self.assertEqual(status, 0)
        self.assertSANs(
            self.load_cert(), ["DNS:node1.local", "DNS:node1", "IP:10.0.0.5"]
        )

    def test_prefix_and_subject(self):
        self.run_main("-f", "kubelet", "-o", "Example", "-u", "", "node1", self.out_dir)
        cert = self.load_cert("kubelet")
        self.assertEqual(
            cert.subject.rfc4514_string(),
            "CN=node1,O=Example,L=Palo Alto,ST=California,C=US",
        )

    def test_no_overwrite(self):
        os.makedirs(self.out_dir)
        path = os.path.join(self.out_dir, "server.key")
        with open(path, "wb") as f:
            f.write(b"keep me")

        status = self.run_main("-n", "node1.local", self.out_dir)

        self.assertEqual(status, 0)
        with open(path, "rb") as f:
            self.assertEqual(f.read(), b"keep me")
        self.assertFalse(os.path.exists(os.path.join(self.out_dir, "server.crt")))

    def test_verbose(self):
        with self.assertLogs("nodecert.newcert", level="INFO") as logs:
            self.run_main("-v", "node1.local", self.out_dir)
        self.assertTrue(any("Subject: CN=node1.local" in line for line in logs.output))

    def test_missing_ca(self):
        with self.assertRaises(SystemExit) as caught:
            newcert.main(["node1.local", self.out_dir])
        self.assertEqual(caught.exception.code, 1)

    def test_invalid_spec(self):
        with self.assertRaises(SystemExit) as caught:
            self.run_main("-b", "1024", "node1.local", self.out_dir)
        self.assertEqual(caught.exception.code, 1)
        self.assertFalse(os.path.exists(self.out_dir))

    def test_key_mismatch(self):
        _, other_key = fixtures.write_ca(
            self.tmpdir, self.ca_cert, fixtures.rsa_key(), name="other"
        )
        with self.assertRaises(SystemExit) as caught:
            newcert.main(
                ["-1", self.ca_cert_path, "-2", other_key, "node1.local", self.out_dir]
            )
        self.assertEqual(caught.exception.code, 1)
