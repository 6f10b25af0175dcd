import pytest
from ballot_engine.encryption.password_hashing import CREDENTIAL_ALPHABET, CredentialHasher


@pytest.fixture
def hasher():
    return CredentialHasher(time_cost=1, memory_cost=1024, parallelism=1)


def test_hash_and_verify_password(hasher):
    password = "StrongPass123!"
    hashed = hasher.hash_secret(password)

    assert hasher.verify(password, hashed) is True
    assert hasher.verify("WrongPass456!", hashed) is False
    assert hasher.needs_rehash(hashed) is False


def test_weak_password_rejected_unless_policy_disabled(hasher):
    with pytest.raises(ValueError):
        hasher.hash_secret("short")
    hashed = hasher.hash_secret("campus-pass-1", enforce_policy=False)
    assert hasher.verify("campus-pass-1", hashed) is True


def test_verify_tolerates_garbage(hasher):
    hashed = hasher.hash_secret("StrongPass123!")
    assert hasher.verify(None, hashed) is False
    assert hasher.verify("", hashed) is False
    assert hasher.verify("StrongPass123!", "not-a-hash") is False


def test_burn_verify_never_succeeds(hasher):
    assert hasher.burn_verify("anything") is False
    assert hasher.burn_verify(None) is False


def test_is_strong_password(hasher):
    assert hasher.is_strong_password("MyStrongPass123!") is True
    assert hasher.is_strong_password("short1!") is False
    # 3 of 4 character classes is enough
    assert hasher.is_strong_password("lowercase123!") is True
    assert hasher.is_strong_password("onlylowercaseletters") is False


def test_generate_credential(hasher):
    credential = hasher.generate_credential(12)
    assert len(credential) == 12
    assert set(credential) <= set(CREDENTIAL_ALPHABET)
    assert len(hasher.generate_credential(3)) == 8
