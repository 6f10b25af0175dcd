import pytest
from ballot_engine.encryption.digital_signatures import ReceiptSigner


@pytest.fixture
def signer():
    return ReceiptSigner()


@pytest.fixture
def receipt_body():
    return {
        "reference": "REF-0A1B2C3D",
        "election_id": 1,
        "timestamp": "2025-03-01T09:30:00",
        "votes": [{"position": "President", "candidate": "Ana Reyes", "partylist": "Unity"}],
    }


def test_sign_and_verify_receipt(signer, receipt_body):
    signed = signer.sign_receipt(receipt_body)
    assert signer.verify_receipt(signed) is True

    tampered = dict(signed, receipt=dict(receipt_body, reference="REF-FFFFFFFF"))
    assert signer.verify_receipt(tampered) is False


def test_verify_with_exported_public_key(signer, receipt_body):
    restored = ReceiptSigner(signer.get_private_key_pem())
    signed = restored.sign_receipt(receipt_body)
    assert ReceiptSigner().verify_receipt(signed, signer.get_public_key_pem()) is True


def test_other_key_rejects_receipt(signer, receipt_body):
    signed = signer.sign_receipt(receipt_body)
    assert ReceiptSigner().verify_receipt(signed) is False


@pytest.mark.parametrize("signed", [
    {},
    {"receipt": {}, "receipt_hash": "!!", "signature": "AA=="},
    {"receipt": {"a": 1}, "receipt_hash": None, "signature": None},
])
def test_malformed_receipts_are_invalid(signer, signed):
    assert signer.verify_receipt(signed) is False
