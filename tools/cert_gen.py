"""
cert_gen.py - X.509 signing certificates for device keys

Issues a certificate for a device key pair so that receivers can bind a
sender id to the public key used to check `signed_data`. All X.509 work is
delegated to the `cryptography` package.

Usage:
    from cryptography.hazmat.primitives.asymmetric import ed25519
    from cert_gen import CertificateAuthority

    key = ed25519.Ed25519PrivateKey.generate()
    ca = CertificateAuthority(country="DE", organization="Example GmbH")
    cert = ca.generate(key, key.public_key(), duration_days=365,
                       sign_alg="Ed25519", self_signed=True,
                       common_name=str(sender_id))
"""

import logging
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa
from cryptography.x509.oid import NameOID

logger = logging.getLogger(__name__)

# signing algorithm name -> (key family, hash)
SIGN_ALGORITHMS = {
    'SHA256withECDSA': ('ec', hashes.SHA256),
    'SHA384withECDSA': ('ec', hashes.SHA384),
    'SHA512withECDSA': ('ec', hashes.SHA512),
    'SHA256withRSA': ('rsa', hashes.SHA256),
    'SHA512withRSA': ('rsa', hashes.SHA512),
    'Ed25519': ('ed25519', None),
}

_KEY_TYPES = {
    'ec': (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey),
    'rsa': (rsa.RSAPrivateKey, rsa.RSAPublicKey),
    'ed25519': (ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey),
}

# backdate the start of validity to tolerate clock skew
NOT_BEFORE_SKEW = timedelta(seconds=50)


class CertificateAuthority:
    """Issuer identity plus the subject attributes stamped on every certificate."""

    def __init__(self, country: str = "DE", organization: str = "Test GmbH",
                 locality: str = "Berlin", state: str = "Berlin",
                 issuer: str = "Test CA"):
        self.country = country
        self.organization = organization
        self.locality = locality
        self.state = state
        self.issuer = issuer

    def _subject(self, common_name: str) -> x509.Name:
        return x509.Name([
            x509.NameAttribute(NameOID.COUNTRY_NAME, self.country),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, self.organization),
            x509.NameAttribute(NameOID.LOCALITY_NAME, self.locality),
            x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, self.state),
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ])

    def generate(self, private_key, public_key, duration_days: int,
                 sign_alg: str, self_signed: bool,
                 common_name: str) -> x509.Certificate:
        """Build and sign a certificate for `public_key`.

        Raises ValueError for an unknown algorithm, a key that does not fit
        it, or a validity window that does not cover now. A self-signed
        certificate whose signature does not match `public_key` raises
        InvalidSignature.
        """
        if sign_alg not in SIGN_ALGORITHMS:
            raise ValueError(f"Unknown signing algorithm: {sign_alg}")
        family, hash_cls = SIGN_ALGORITHMS[sign_alg]
        private_type, public_type = _KEY_TYPES[family]
        if not isinstance(private_key, private_type) or not isinstance(public_key, public_type):
            raise ValueError(f"{sign_alg} needs {family} keys")

        now = datetime.now(timezone.utc)
        builder = (
            x509.CertificateBuilder()
            .issuer_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, self.issuer)]))
            .subject_name(self._subject(common_name))
            .serial_number(1)
            .not_valid_before(now - NOT_BEFORE_SKEW)
            .not_valid_after(now + timedelta(days=duration_days))
            .public_key(public_key)
        )
        cert = builder.sign(private_key, hash_cls() if hash_cls else None)

        check_validity(cert, now)
        if self_signed:
            verify_signature(cert, public_key)
            verify_signature(cert, cert.public_key())

        logger.info("Issued %s certificate for %s valid %d days",
                    sign_alg, common_name, duration_days)
        return cert


def check_validity(cert: x509.Certificate, when: datetime) -> None:
    if not cert.not_valid_before_utc <= when <= cert.not_valid_after_utc:
        raise ValueError(
            f"Certificate not valid at {when.isoformat()} "
            f"({cert.not_valid_before_utc.isoformat()} - {cert.not_valid_after_utc.isoformat()})")


def verify_signature(cert: x509.Certificate, public_key) -> None:
    """Check the certificate's signature against `public_key`.

    Raises cryptography.exceptions.InvalidSignature on mismatch.
    """
    if isinstance(public_key, ed25519.Ed25519PublicKey):
        public_key.verify(cert.signature, cert.tbs_certificate_bytes)
    elif isinstance(public_key, ec.EllipticCurvePublicKey):
        public_key.verify(cert.signature, cert.tbs_certificate_bytes,
                          ec.ECDSA(cert.signature_hash_algorithm))
    elif isinstance(public_key, rsa.RSAPublicKey):
        public_key.verify(cert.signature, cert.tbs_certificate_bytes,
                          padding.PKCS1v15(), cert.signature_hash_algorithm)
    else:
        raise ValueError(f"Unsupported public key type: {type(public_key).__name__}")
