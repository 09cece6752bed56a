"""SSH signature verification over challenge nonces.

Clients sign the raw nonce bytes with their private key, the way ssh-agent
answers a sign request, and submit the resulting SSH signature blob:

    string  signature algorithm name   (e.g. "rsa-sha2-256")
    string  signature data

Signature data per algorithm family (RFC 4253, RFC 5656, RFC 8332, RFC 8709):
- ssh-ed25519: 64 raw EdDSA bytes
- RSA: PKCS#1 v1.5 signature, SHA-1 / SHA-256 / SHA-512 by algorithm name
- ECDSA: "mpint r || mpint s", digest chosen by curve size

The blob may be passed as bytes or as base64 text.
"""

from __future__ import annotations

import base64
import binascii
import struct
from typing import Protocol, runtime_checkable

import structlog
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature
from cryptography.hazmat.primitives.serialization import load_ssh_public_key

logger = structlog.get_logger()

# Signature algorithms a key of each type may legitimately produce.
ACCEPTED_SIGNATURE_ALGORITHMS: dict[str, frozenset[str]] = {
    "ssh-ed25519": frozenset({"ssh-ed25519"}),
    "ssh-rsa": frozenset({"rsa-sha2-512", "rsa-sha2-256", "ssh-rsa"}),
    "ecdsa-sha2-nistp256": frozenset({"ecdsa-sha2-nistp256"}),
    "ecdsa-sha2-nistp384": frozenset({"ecdsa-sha2-nistp384"}),
    "ecdsa-sha2-nistp521": frozenset({"ecdsa-sha2-nistp521"}),
}

_RSA_HASHES: dict[str, type[hashes.HashAlgorithm]] = {
    "ssh-rsa": hashes.SHA1,
    "rsa-sha2-256": hashes.SHA256,
    "rsa-sha2-512": hashes.SHA512,
}

# algorithm -> (curve name, digest)
_ECDSA_PARAMS: dict[str, tuple[str, type[hashes.HashAlgorithm]]] = {
    "ecdsa-sha2-nistp256": ("secp256r1", hashes.SHA256),
    "ecdsa-sha2-nistp384": ("secp384r1", hashes.SHA384),
    "ecdsa-sha2-nistp521": ("secp521r1", hashes.SHA512),
}

_ED25519_SIGNATURE_LENGTH = 64
_UINT32 = struct.Struct(">I")


@runtime_checkable
class SignatureVerifier(Protocol):
    """Check a signature over a nonce against one public key."""

    def verify(self, key_type: str, key_bytes: bytes, nonce: bytes, signature: bytes | str) -> bool: ...


def _read_string(buf: bytes, offset: int) -> tuple[bytes, int]:
    """Read one SSH length-prefixed string. Return (value, next_offset)."""
    if offset + _UINT32.size > len(buf):
        raise ValueError("truncated SSH string length")
    (length,) = _UINT32.unpack_from(buf, offset)
    start = offset + _UINT32.size
    end = start + length
    if end > len(buf):
        raise ValueError("truncated SSH string body")
    return buf[start:end], end


def _read_positive_mpint(buf: bytes, offset: int) -> tuple[int, int]:
    raw, offset = _read_string(buf, offset)
    if not raw or raw[0] & 0x80:
        raise ValueError("mpint must be positive")
    return int.from_bytes(raw, "big"), offset


def parse_ssh_signature(blob: bytes) -> tuple[str, bytes]:
    """Split an SSH signature blob into (algorithm, signature data).

    Raises ValueError on truncation, trailing bytes, or a non-ASCII name.
    """
    algorithm_raw, offset = _read_string(blob, 0)
    signature, offset = _read_string(blob, offset)
    if offset != len(blob):
        raise ValueError("trailing bytes after SSH signature")
    try:
        algorithm = algorithm_raw.decode("ascii")
    except UnicodeDecodeError as exc:
        raise ValueError("signature algorithm name is not ASCII") from exc
    return algorithm, signature


def _decode_signature(signature: bytes | str) -> bytes:
    if isinstance(signature, bytes):
        return signature
    try:
        return base64.b64decode(signature.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("signature is not valid base64") from exc


class SshSignatureVerifier:
    """Production verifier for ssh-ed25519, RSA, and NIST ECDSA keys."""

    def verify(self, key_type: str, key_bytes: bytes, nonce: bytes, signature: bytes | str) -> bool:
        """Return True only for a correct signature by this exact key over nonce.

        The declared signature algorithm is checked against key_type before any
        key material is loaded.
        """
        try:
            algorithm, signature_data = parse_ssh_signature(_decode_signature(signature))
        except ValueError as exc:
            logger.debug("malformed ssh signature", reason=str(exc))
            return False

        if algorithm not in ACCEPTED_SIGNATURE_ALGORITHMS.get(key_type, frozenset()):
            logger.debug("signature algorithm does not match key type", key_type=key_type, algorithm=algorithm)
            return False

        encoded_key = f"{key_type} {base64.b64encode(key_bytes).decode('ascii')}".encode("ascii")
        try:
            public_key = load_ssh_public_key(encoded_key)
        except (ValueError, UnsupportedAlgorithm) as exc:
            logger.debug("stored key could not be loaded", key_type=key_type, reason=str(exc))
            return False

        try:
            self._verify_with_key(public_key, algorithm, signature_data, nonce)
        except (InvalidSignature, ValueError):
            return False
        return True

    @staticmethod
    def _verify_with_key(public_key: object, algorithm: str, signature_data: bytes, nonce: bytes) -> None:
        """Dispatch to the algorithm-specific check. Raise InvalidSignature or ValueError on failure."""
        if algorithm == "ssh-ed25519":
            if not isinstance(public_key, Ed25519PublicKey):
                raise ValueError("key is not ed25519")
            if len(signature_data) != _ED25519_SIGNATURE_LENGTH:
                raise InvalidSignature
            public_key.verify(signature_data, nonce)
            return

        if algorithm in _RSA_HASHES:
            if not isinstance(public_key, RSAPublicKey):
                raise ValueError("key is not RSA")
            modulus_length = (public_key.key_size + 7) // 8
            if len(signature_data) > modulus_length:
                raise InvalidSignature
            # Some signers strip leading zero bytes from the signature integer.
            padded = signature_data.rjust(modulus_length, b"\x00")
            public_key.verify(padded, nonce, padding.PKCS1v15(), _RSA_HASHES[algorithm]())
            return

        if algorithm in _ECDSA_PARAMS:
            curve_name, digest = _ECDSA_PARAMS[algorithm]
            if not isinstance(public_key, ec.EllipticCurvePublicKey) or public_key.curve.name != curve_name:
                raise ValueError("key curve does not match signature algorithm")
            r, offset = _read_positive_mpint(signature_data, 0)
            s, offset = _read_positive_mpint(signature_data, offset)
            if offset != len(signature_data):
                raise ValueError("trailing bytes after ECDSA signature")
            public_key.verify(encode_dss_signature(r, s), nonce, ec.ECDSA(digest()))
            return

        raise ValueError(f"unsupported signature algorithm: {algorithm}")
