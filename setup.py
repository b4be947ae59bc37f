from setuptools import setup, find_packages

requires = [
    "cryptography >= 42",
    "pyOpenSSL >= 23.2.0",
    "python-dateutil",
    "pyramid",
    "plaster_pastedeploy",
    # Transient dependency from pyramid->webob,
    # should be fixed in a later release of webob
    "legacy-cgi; python_version >= '3.13'"
]

setup(
    name="nodecert",
    version="0.3.0",
    python_requires=">=3.8",
    description="nodecert",
    long_description="""
nodecert issues leaf TLS certificates for hosts and services in an internal
PKI, such as the node certificates of a cluster. Given the certificate and
private key of an existing certificate authority it generates a fresh RSA key,
builds a certificate signing request with the requested subject, key usages
and subject alternative names, signs it with the CA and writes the pair as
PEM files.

Re-running it with --no-overwrite leaves already provisioned hosts alone, so it
is safe to call from setup scripts that run more than once.
      """,
    classifiers=[
        "Programming Language :: Python",
        "Topic :: Security :: Cryptography",
        "Topic :: System :: Systems Administration",
    ],
    keywords="certificates x509 ca cert ssl tls pki",
    packages=find_packages(exclude=["tests"]),
    include_package_data=True,
    zip_safe=False,
    test_suite="tests",
    install_requires=requires,
    entry_points="""\
      [console_scripts]
      nodecert = nodecert.scripts.newcert:main
      """,
)
