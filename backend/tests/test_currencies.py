import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from taqqafi.currencies import CURRENCY_CODES, detect_currency, get_currency, is_currency_code
from taqqafi.sms_parser import parse_sms


def test_catalog_covers_required_codes():
    expected = {
        "SAR", "AED", "JOD", "BHD", "KWD", "OMR", "QAR", "EGP", "MAD", "TND", "LBP",
        "IQD", "SDG", "LYD", "SYP", "YER", "DZD", "USD", "EUR", "GBP", "TRY",
    }
    assert set(CURRENCY_CODES) == expected
    assert len(CURRENCY_CODES) == len(expected)


def test_get_currency_is_case_insensitive_and_strict():
    sar = get_currency("sar")
    assert sar.symbol == "SR"
    assert "ر.س" in sar.keywords
    assert "دينار اردني" in get_currency("JOD").keywords
    with pytest.raises(KeyError):
        get_currency("XXX")
    assert is_currency_code("kwd") is True
    assert is_currency_code("") is False
    assert is_currency_code(None) is False


def test_detect_currency_prefers_longest_keyword():
    assert detect_currency("رصيدك بالدينار: 100 دينار اردني") == "JOD"
    assert detect_currency("تم خصم 5 ريال عماني") == "OMR"
    assert detect_currency("تم خصم 5 ريال") == "SAR"


def test_detect_currency_matches_latin_codes_as_tokens():
    assert detect_currency("Purchase of SAR 45", default="USD") == "SAR"
    assert detect_currency("Purchase 45.00 AED at Carrefour") == "AED"
    assert detect_currency("Paid 45 TL at Migros") == "TRY"
    # "tl" inside "settlement" is not the lira
    assert detect_currency("Settlement of 50 units", default="EGP") == "EGP"


def test_detect_currency_uses_normalized_arabic():
    assert detect_currency("خصم 20 دينار أردنى") == "JOD"


def test_detect_currency_falls_back_to_default():
    assert detect_currency("hello 50", default="KWD") == "KWD"
    assert detect_currency("") == "SAR"


def test_detect_currency_keeps_hamza_abbreviations_apart():
    # Both fold to the same string once hamza is unified.
    assert detect_currency("خصم 25 د.أ من حسابك") == "JOD"
    assert detect_currency("خصم 25 د.إ من حسابك") == "AED"


def test_parsed_jordanian_debit_keeps_its_currency():
    tx = parse_sms("البنك العربي: تم خصم مبلغ 25.00 د.أ من بطاقتك")
    assert tx.currency == "JOD"
    assert tx.amount == pytest.approx(25.0)
