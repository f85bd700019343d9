import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .normalizer import normalize_arabic


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    name: str
    name_ar: str
    symbol: str
    keywords: Tuple[str, ...]


# Order matters: on equal keyword length the earlier entry wins detection.
CURRENCIES: Tuple[CurrencyInfo, ...] = (
    CurrencyInfo("SAR", "Saudi Riyal", "ريال سعودي", "SR", ("SAR", "SR", "ر.س", "ريال سعودى", "ريال سعودي", "ريال")),
    CurrencyInfo("AED", "UAE Dirham", "درهم إماراتي", "AED", ("AED", "د.إ", "درهم اماراتي", "درهم إماراتي", "درهم")),
    CurrencyInfo("JOD", "Jordanian Dinar", "دينار أردني", "JD", ("JOD", "JD", "د.أ", "دينار اردني", "دينار أردني")),
    CurrencyInfo("BHD", "Bahraini Dinar", "دينار بحريني", "BD", ("BHD", "BD", "د.ب", "دينار بحريني")),
    CurrencyInfo("KWD", "Kuwaiti Dinar", "دينار كويتي", "KD", ("KWD", "KD", "د.ك", "دينار كويتي")),
    CurrencyInfo("OMR", "Omani Rial", "ريال عماني", "OMR", ("OMR", "ر.ع", "ريال عماني", "ريال عمانى")),
    CurrencyInfo("QAR", "Qatari Riyal", "ريال قطري", "QR", ("QAR", "QR", "ر.ق", "ريال قطري", "ريال قطرى")),
    CurrencyInfo("EGP", "Egyptian Pound", "جنيه مصري", "EGP", ("EGP", "ج.م", "جنيه مصري", "جنيه مصرى", "جنيه")),
    CurrencyInfo("MAD", "Moroccan Dirham", "درهم مغربي", "MAD", ("MAD", "د.م", "درهم مغربي", "درهم مغربى")),
    CurrencyInfo("TND", "Tunisian Dinar", "دينار تونسي", "TND", ("TND", "د.ت", "دينار تونسي", "دينار تونسى")),
    CurrencyInfo("LBP", "Lebanese Pound", "ليرة لبنانية", "LBP", ("LBP", "ل.ل", "ليرة لبنانية", "ليره لبنانيه")),
    CurrencyInfo("IQD", "Iraqi Dinar", "دينار عراقي", "IQD", ("IQD", "د.ع", "دينار عراقي", "دينار عراقى")),
    CurrencyInfo("SDG", "Sudanese Pound", "جنيه سوداني", "SDG", ("SDG", "ج.س", "جنيه سوداني", "جنيه سودانى")),
    CurrencyInfo("LYD", "Libyan Dinar", "دينار ليبي", "LYD", ("LYD", "د.ل", "دينار ليبي", "دينار ليبى")),
    CurrencyInfo("SYP", "Syrian Pound", "ليرة سورية", "SYP", ("SYP", "ل.س", "ليرة سورية", "ليره سوريه")),
    CurrencyInfo("YER", "Yemeni Rial", "ريال يمني", "YER", ("YER", "ر.ي", "ريال يمني", "ريال يمنى")),
    CurrencyInfo("DZD", "Algerian Dinar", "دينار جزائري", "DZD", ("DZD", "د.ج", "دينار جزائري", "دينار جزائرى")),
    CurrencyInfo("USD", "US Dollar", "دولار أمريكي", "$", ("USD", "دولار امريكي", "دولار أمريكي", "دولار")),
    CurrencyInfo("EUR", "Euro", "يورو", "€", ("EUR", "يورو")),
    CurrencyInfo("GBP", "British Pound", "جنيه إسترليني", "£", ("GBP", "جنيه استرليني", "جنيه إسترليني")),
    CurrencyInfo("TRY", "Turkish Lira", "ليرة تركية", "₺", ("TRY", "TL", "ليرة تركية", "ليره تركيه")),
)

DEFAULT_CURRENCY = "SAR"

_BY_CODE: Dict[str, CurrencyInfo] = {c.code: c for c in CURRENCIES}

CURRENCY_CODES: Tuple[str, ...] = tuple(c.code for c in CURRENCIES)

# Latin abbreviations used inside SMS bodies, including the short forms
# (SR, JD, BD, KD, QR, TL) that are not ISO codes.
LATIN_CURRENCY_TOKENS: Tuple[str, ...] = tuple(
    kw for c in CURRENCIES for kw in c.keywords if re.fullmatch(r"[A-Za-z]+", kw)
)

# Dotted Arabic abbreviations such as "ر.س" or "د.إ".
ARABIC_CURRENCY_SYMBOLS: Tuple[str, ...] = tuple(
    kw for c in CURRENCIES for kw in c.keywords if re.fullmatch(r"\S\.\S", kw)
)


def get_currency(code: str) -> CurrencyInfo:
    return _BY_CODE[code.upper()]


def is_currency_code(code: Optional[str]) -> bool:
    return bool(code) and code.upper() in _BY_CODE


def _is_latin(keyword: str) -> bool:
    return re.fullmatch(r"[A-Za-z]+", keyword) is not None


def _keyword_hit(keyword: str, flat_lower: str, normalized_lower: str) -> int:
    """
    2 for a hit on the text as written, 1 for a hit only after Arabic
    normalization, 0 for no hit. Normalization folds "د.أ" and "د.إ" into the
    same string, so a literal hit has to outrank a normalized one.
    """
    if _is_latin(keyword):
        # Whole-token match; short codes like "tl" or "sr" occur inside words.
        pattern = rf"(?<![a-z]){re.escape(keyword.lower())}(?![a-z])"
        return 2 if re.search(pattern, flat_lower) else 0
    if keyword in flat_lower:
        return 2
    if normalize_arabic(keyword) in normalized_lower:
        return 1
    return 0


def detect_currency(text: str, default: str = DEFAULT_CURRENCY) -> str:
    """
    Return the code whose longest keyword occurs in the text.
    "دينار اردني" must beat a shorter generic word, so the longest keyword
    wins rather than the first one found.
    """
    flat_lower = re.sub(r"\s+", " ", text or "").strip().lower()
    normalized_lower = normalize_arabic(flat_lower)
    best: Optional[Tuple[str, Tuple[int, int]]] = None
    for currency in CURRENCIES:
        for keyword in currency.keywords:
            hit = _keyword_hit(keyword, flat_lower, normalized_lower)
            if not hit:
                continue
            score = (len(keyword), hit)
            if best is None or score > best[1]:
                best = (currency.code, score)
    if best is None:
        return default
    return best[0]


def currency_as_dict(currency: CurrencyInfo) -> Dict[str, object]:
    return {
        "code": currency.code,
        "name": currency.name,
        "name_ar": currency.name_ar,
        "symbol": currency.symbol,
        "keywords": list(currency.keywords),
    }
