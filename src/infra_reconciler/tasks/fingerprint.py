"""
SSH public key fingerprints.

Two fingerprints exist for the same key:

aws
MD5 over the DER encoded SubjectPublicKeyInfo of the RSA key. This is what the
provider reports for an imported key pair, so it is what we compare against.

openssh
MD5 over the raw key blob, as printed by ssh-keygen -l -E md5.

Both are rendered as colon separated lowercase hex.

This module has no third party deps. The DER we need is one fixed structure,
so it is encoded directly.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import struct

from infra_reconciler.core.errors import ConfigurationError

# AlgorithmIdentifier for rsaEncryption (1.2.840.113549.1.1.1) with NULL parameters.
_RSA_ALGORITHM_ID = bytes.fromhex("300d06092a864886f70d0101010500")


def colon_separated_hex(data: bytes) -> str:
    """Format bytes as aa:bb:cc."""
    return ":".join(f"{b:02x}" for b in data)


def _read_string(blob: bytes, offset: int) -> tuple[bytes, int]:
    if offset + 4 > len(blob):
        raise ConfigurationError("truncated SSH public key")
    (length,) = struct.unpack(">I", blob[offset : offset + 4])
    start = offset + 4
    end = start + length
    if end > len(blob):
        raise ConfigurationError("truncated SSH public key")
    return blob[start:end], end


def parse_ssh_public_key(public_key: str) -> tuple[str, bytes]:
    """
    Split an authorized_keys style line.

    Returns the key type and the decoded key blob.
    """
    tokens = public_key.split()
    if len(tokens) < 2:
        raise ConfigurationError(f"error parsing SSH public key: {public_key!r}")

    try:
        blob = base64.b64decode(tokens[1], validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError(f"error decoding SSH public key: {public_key!r}") from exc

    key_type, _ = _read_string(blob, 0)
    return key_type.decode("ascii", errors="replace"), blob


def _der_length(length: int) -> bytes:
    if length < 0x80:
        return bytes([length])
    raw = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([0x80 | len(raw)]) + raw


def _der(tag: int, content: bytes) -> bytes:
    return bytes([tag]) + _der_length(len(content)) + content


def _der_integer(value: int) -> bytes:
    return _der(0x02, value.to_bytes((value.bit_length() + 8) // 8, "big"))


def rsa_public_key_to_der(blob: bytes) -> bytes:
    """
    Convert an ssh-rsa key blob to DER SubjectPublicKeyInfo.

    The blob holds the key type, the exponent and the modulus as SSH strings.
    """
    key_type, offset = _read_string(blob, 0)
    if key_type != b"ssh-rsa":
        raise ConfigurationError(
            f"unexpected type of SSH key ({key_type.decode('ascii', errors='replace')}), only RSA keys can be imported"
        )

    e_raw, offset = _read_string(blob, offset)
    n_raw, _ = _read_string(blob, offset)
    e = int.from_bytes(e_raw, "big")
    n = int.from_bytes(n_raw, "big")

    rsa_key = _der(0x30, _der_integer(n) + _der_integer(e))
    bit_string = _der(0x03, b"\x00" + rsa_key)
    return _der(0x30, _RSA_ALGORITHM_ID + bit_string)


def compute_aws_key_fingerprint(public_key: str) -> str:
    """Fingerprint the provider reports for an imported RSA key."""
    _, blob = parse_ssh_public_key(public_key)
    der = rsa_public_key_to_der(blob)
    return colon_separated_hex(hashlib.md5(der, usedforsecurity=False).digest())


def compute_openssh_key_fingerprint(public_key: str) -> str:
    """Fingerprint as printed by ssh-keygen with the md5 hash."""
    _, blob = parse_ssh_public_key(public_key)
    return colon_separated_hex(hashlib.md5(blob, usedforsecurity=False).digest())
