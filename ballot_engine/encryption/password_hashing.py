# ballot_engine/encryption/password_hashing.py

import re
import secrets
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, VerificationError, InvalidHashError, HashingError

# Argon2id hashing for staff passwords and voter roster credentials.

# No 0/O or 1/l/I, so printed credentials survive being read aloud.
CREDENTIAL_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZabcdefghijkmnpqrstuvwxyz23456789"


class CredentialHasher:
    def __init__(self, time_cost=3, memory_cost=65536, parallelism=4):
        self.ph = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=32,
            salt_len=16,
        )
        self._dummy_hash = None

    def hash_secret(self, secret: str, enforce_policy: bool = True) -> str:
        if enforce_policy and not self.is_strong_password(secret):
            raise ValueError("Password does not meet security requirements")
        if not secret:
            raise ValueError("Credential must not be empty")
        try:
            return self.ph.hash(secret)
        except HashingError as e:
            raise ValueError(f"Credential hashing failed: {str(e)}")

    def verify(self, secret: str, hash_value: str) -> bool:
        if not isinstance(secret, str) or not secret:
            return False
        try:
            return self.ph.verify(hash_value, secret)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    def burn_verify(self, secret) -> bool:
        """Spend the cost of a real verification against a throwaway hash.

        Used when no account matched, so a missing voter and a wrong
        credential take the same time.
        """
        if self._dummy_hash is None:
            self._dummy_hash = self.ph.hash(secrets.token_urlsafe(16))
        self.verify(secret if isinstance(secret, str) else '', self._dummy_hash)
        return False

    def needs_rehash(self, hash_value: str) -> bool:
        return self.ph.check_needs_rehash(hash_value)

    def is_strong_password(self, password: str) -> bool:
        if not isinstance(password, str) or len(password) < 12:
            return False
        has_upper = bool(re.search(r'[A-Z]', password))
        has_lower = bool(re.search(r'[a-z]', password))
        has_digit = bool(re.search(r'\d', password))
        has_special = bool(re.search(r'[!@#$%^&*(),.?":{}|<>]', password))
        return sum([has_upper, has_lower, has_digit, has_special]) >= 3

    def generate_credential(self, length=10) -> str:
        """Random roster credential handed to a voter once at registration."""
        length = max(length, 8)
        return ''.join(secrets.choice(CREDENTIAL_ALPHABET) for _ in range(length))
