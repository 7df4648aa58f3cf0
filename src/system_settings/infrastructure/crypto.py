from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from src.shared.exceptions import BadRequestError


@dataclass(frozen=True, slots=True)
class CipherEnvelope:
    """
    Result of one encryption, hex encoded:
      - encrypted_data: ciphertext with the GCM tag appended
      - iv: 96-bit nonce
      - key: the 256-bit data key (returned to the caller, never stored)
    """
    encrypted_data: str
    iv: str
    key: str
    key_id: Optional[str]
    algorithm: str = "AES-256-GCM"

    def to_json(self) -> Dict[str, Optional[str]]:
        return {
            "encrypted_data": self.encrypted_data,
            "iv": self.iv,
            "key": self.key,
            "key_id": self.key_id,
            "algorithm": self.algorithm,
        }


class AesGcmCipher:
    """AES-256-GCM with a fresh data key and nonce per call."""

    def encrypt(self, plaintext: str, *, key_id: Optional[str] = None) -> CipherEnvelope:
        key = AESGCM.generate_key(bit_length=256)
        iv = os.urandom(12)
        ct = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), associated_data=None)
        return CipherEnvelope(encrypted_data=ct.hex(), iv=iv.hex(), key=key.hex(), key_id=key_id)

    def decrypt(self, encrypted_data: str, iv: str, key: str) -> str:
        try:
            raw_key = bytes.fromhex(key)
            if len(raw_key) != 32:
                raise ValueError("key must be 32 bytes")
            pt = AESGCM(raw_key).decrypt(bytes.fromhex(iv), bytes.fromhex(encrypted_data), associated_data=None)
        except (ValueError, InvalidTag) as e:
            raise BadRequestError("Decryption failed: invalid key, iv or ciphertext") from e
        return pt.decode("utf-8")
