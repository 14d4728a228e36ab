import pytest

from statement_ledger.classifiers.merchant import (
    UNKNOWN_MERCHANT,
    apply_domain_mapping,
    cleanup_merchant_candidate,
    is_code_like,
    merchant_chain_key,
    normalize_merchant,
    normalize_token_casing,
)
from statement_ledger.models import MerchantKind


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("KIWI 505 STORO", "KIWI 505 STORO"),
        ("VISA 1234 rema 1000 storo", "Rema 1000 Storo"),
        ("www.clasohlson.com/no", "CLAS OHLSON"),
        ("Netflix.com", "NETFLIX"),
        ("bunnpris as", "Bunnpris AS"),
        ("XXL sport", "XXL Sport"),
        ("Kiwi -- Storo", "Kiwi Storo"),
        ("REMA 1000 NOK", "REMA 1000"),
    ],
)
def test_normalize_merchant_names(raw, expected):
    result = normalize_merchant(raw)
    assert result.merchant == expected
    assert result.merchant_kind == MerchantKind.NAME


@pytest.mark.parametrize(("raw", "kind"), [("12345", MerchantKind.CODE), ("NOK 250,00", MerchantKind.CODE), ("", MerchantKind.UNKNOWN), (None, MerchantKind.UNKNOWN)])
def test_normalize_merchant_without_name(raw, kind):
    result = normalize_merchant(raw)
    assert result.merchant == UNKNOWN_MERCHANT
    assert result.merchant_kind == kind


def test_fallback_is_used_when_primary_is_a_code():
    result = normalize_merchant("12345", "Kiwi storo")
    assert result.merchant == "Kiwi Storo"
    assert result.merchant_raw == "12345"
    assert result.merchant_kind == MerchantKind.NAME


def test_fallback_raw_is_kept_when_primary_is_empty():
    result = normalize_merchant(None, "Kiwi")
    assert result.merchant == "Kiwi"
    assert result.merchant_raw == "Kiwi"


def test_failed_fallback_returns_primary():
    result = normalize_merchant("123", "456")
    assert result.merchant == UNKNOWN_MERCHANT
    assert result.merchant_raw == "123"
    assert result.merchant_kind == MerchantKind.CODE


def test_helpers():
    assert is_code_like("  ")
    assert is_code_like("kr 99")
    assert not is_code_like("7-Eleven")
    assert apply_domain_mapping("apple.com/bill") == "APPLE"
    assert apply_domain_mapping("Apple Store") == "Apple Store"
    assert cleanup_merchant_candidate("Kortkjøp  Narvesen Oslo S -") == "Narvesen Oslo S"
    assert normalize_token_casing("ALL CAPS AS") == "ALL CAPS AS"


def test_merchant_chain_key():
    assert merchant_chain_key(None, "KIWI 505") == "KIWI"
    assert merchant_chain_key("m-1", "KIWI 505") == "KIWI 505"
    assert merchant_chain_key(None, "Skatteetaten restskatt") == "SKATTEETATEN"
    assert merchant_chain_key(None, "REMA") == "REMA"
    assert merchant_chain_key(None, None) == ""


def test_reference_codes_and_domains():
    assert normalize_merchant("100021 ELKJOP.NO").merchant == "ELKJOP"

    code = normalize_merchant("100022 NOK")
    assert code.merchant == UNKNOWN_MERCHANT
    assert code.merchant_kind == MerchantKind.CODE
