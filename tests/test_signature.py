import hashlib
import hmac
from decimal import Decimal

from infrastructure.external.payments.signature import canonicalize, sign, sign_params, verify


SECRET = "s3cr3t"


def test_canonical_string_sorts_keys_and_concatenates_pairs():
    params = {"token": "abc", "apiKey": "key", "amount": 50000}
    assert canonicalize(params) == "amount50000apiKeykeytokenabc"


def test_sign_is_hex_hmac_sha256_of_canonical_string():
    params = {"apiKey": "key", "token": "abc"}
    expected = hmac.new(SECRET.encode(), b"apiKeykeytokenabc", hashlib.sha256).hexdigest()
    assert sign(params, SECRET) == expected
    assert sign(params, SECRET) == sign(dict(reversed(list(params.items()))), SECRET)


def test_value_formatting_is_fixed():
    assert canonicalize({"a": None, "b": True, "c": False}) == "abtruecfalse"
    assert canonicalize({"amount": Decimal("50000")}) == "amount50000"
    assert canonicalize({"amount": 50000.0}) == "amount50000"
    assert canonicalize({"amount": Decimal("10.50")}) == "amount10.5"


def test_sign_params_appends_s_and_ignores_previous_signature():
    signed = sign_params({"apiKey": "key", "token": "abc", "s": "stale"}, SECRET)
    assert signed["s"] == sign({"apiKey": "key", "token": "abc"}, SECRET)
    assert set(signed) == {"apiKey", "token", "s"}


def test_verify_accepts_valid_and_rejects_tampering():
    params = {"apiKey": "key", "token": "abc"}
    signature = sign(params, SECRET)
    assert verify(params, signature, SECRET)
    assert verify({**params, "s": signature}, signature, SECRET)
    assert not verify({**params, "token": "abd"}, signature, SECRET)
    assert not verify(params, signature, "other-secret")
    assert not verify(params, signature.upper(), SECRET)
    assert not verify(params, "", SECRET)
    assert not verify(params, None, SECRET)


def test_unicode_values_are_signed_as_utf8():
    params = {"subject": "Maka Tatuajes - Abono sesión"}
    expected = hmac.new(SECRET.encode(), "subjectMaka Tatuajes - Abono sesión".encode("utf-8"), hashlib.sha256).hexdigest()
    assert sign(params, SECRET) == expected


def test_any_single_character_change_breaks_the_signature():
    params = {"apiKey": "key", "token": "abc"}
    signature = sign(params, SECRET)

    for position, char in enumerate(signature):
        replacement = "0" if char != "0" else "1"
        mutated = signature[:position] + replacement + signature[position + 1:]
        assert not verify(params, mutated, SECRET), position


def test_empty_params_sign_the_empty_string():
    expected = hmac.new(SECRET.encode(), b"", hashlib.sha256).hexdigest()
    assert canonicalize({}) == ""
    assert sign({}, SECRET) == expected
    assert verify({}, expected, SECRET)
