# ballot_engine/encryption/digital_signatures.py

import base64
import json
import hashlib
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives import serialization

# Ed25519 signatures over ballot receipts, so a voter can later show that a
# confirmation really came from this server. The receipt lists what was
# chosen; it proves nothing about the tally.


class ReceiptSigner:
    def __init__(self, private_key_pem: str = None):
        if private_key_pem:
            self.load_private_key(private_key_pem)
        else:
            self.private_key = Ed25519PrivateKey.generate()
            self.public_key = self.private_key.public_key()

    def load_private_key(self, pem_str: str):
        self.private_key = serialization.load_pem_private_key(pem_str.encode(), password=None)
        self.public_key = self.private_key.public_key()

    def get_public_key_pem(self) -> str:
        pem = self.public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo)
        return pem.decode()

    def get_private_key_pem(self) -> str:
        pem = self.private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption())
        return pem.decode()

    @staticmethod
    def _digest(body: dict) -> bytes:
        return hashlib.sha256(json.dumps(body, sort_keys=True).encode()).digest()

    def sign_receipt(self, body: dict) -> dict:
        digest = self._digest(body)
        return {
            "receipt": body,
            "receipt_hash": base64.b64encode(digest).decode(),
            "signature": base64.b64encode(self.private_key.sign(digest)).decode(),
        }

    def verify_receipt(self, signed: dict, public_key_pem: str = None) -> bool:
        public_key = self.public_key
        if public_key_pem:
            public_key = serialization.load_pem_public_key(public_key_pem.encode())
        try:
            digest = self._digest(signed["receipt"])
            if digest != base64.b64decode(signed["receipt_hash"]):
                return False
            public_key.verify(base64.b64decode(signed["signature"]), digest)
            return True
        except (KeyError, TypeError, ValueError, InvalidSignature):
            return False
