import math
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

from .currencies import ARABIC_CURRENCY_SYMBOLS, DEFAULT_CURRENCY, LATIN_CURRENCY_TOKENS, detect_currency
from .dedup import compute_hash
from .normalizer import flatten_text, normalize_arabic, westernize_digits

STATUS_NOT_FINANCIAL = "not_financial"
STATUS_UNPARSEABLE = "unparseable"
STATUS_PARSED = "parsed"

UNKNOWN_MERCHANT = "Unknown"

ARABIC_RANGE = "\u0600-\u06FF"


@dataclass(frozen=True)
class ParsedTransaction:
    amount: float
    currency: str
    merchant: str
    direction: str
    raw_text: str
    content_hash: str

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _alternation(words: Iterable[str]) -> str:
    # Keywords go through the same normalizer as the text they are matched
    # against; longest first so "ريال سعودي" is tried before "ريال".
    normalized = {normalize_arabic(w) for w in words}
    return "|".join(re.escape(w) for w in sorted(normalized, key=len, reverse=True))


# ----------------- Financial-message gate -----------------

CURRENCY_NAME_WORDS = ("ريال", "درهم", "جنيه", "دينار", "ليرة")
TRANSACTION_VERBS_EN = ("debit", "credit", "deducted", "charged", "payment", "transfer", "purchase", "amount")
TRANSACTION_VERBS_AR = (
    "مدين", "دائن", "خصم", "إيداع", "حوالة", "تحويل", "شراء",
    "دفع", "سداد", "مبلغ", "بقيمة", "بمبلغ", "تسديد", "سحب",
)
CARD_MARKERS = ("mada", "card", "بطاقة", "مدى")
BALANCE_MARKERS = ("balance", "رصيد")

FINANCIAL_SIGNALS: Tuple[Pattern[str], ...] = (
    re.compile(rf"\b(?:{_alternation(LATIN_CURRENCY_TOKENS)})\b", re.IGNORECASE),
    re.compile(_alternation(ARABIC_CURRENCY_SYMBOLS)),
    re.compile(_alternation(CURRENCY_NAME_WORDS)),
    re.compile(_alternation(TRANSACTION_VERBS_EN), re.IGNORECASE),
    re.compile(_alternation(TRANSACTION_VERBS_AR)),
    re.compile(_alternation(CARD_MARKERS), re.IGNORECASE),
    re.compile(_alternation(BALANCE_MARKERS), re.IGNORECASE),
)


def is_financial_sms(text: str) -> bool:
    """
    Cheap permissive gate: anything that looks like a bank notification passes,
    extraction decides later whether it is usable.
    """
    flat = flatten_text(normalize_arabic(text or ""))
    if not flat:
        return False
    return any(rgx.search(flat) for rgx in FINANCIAL_SIGNALS)


# ----------------- Amount -----------------

NUMBER = r"([0-9,]+\.?[0-9]*)"

BALANCE_KEYWORDS = (
    "balance", "available balance", "remaining balance", "current balance",
    "الرصيد", "الرصيد المتوفر", "الرصيد المتبقي", "رصيدك", "رصيد",
)
BALANCE_LOOKBACK = 40

_CODES = _alternation(LATIN_CURRENCY_TOKENS)
_SYMBOLS = _alternation(ARABIC_CURRENCY_SYMBOLS)

# Priority order. The first family producing a valid number decides the
# amount; lower families are never consulted after that.
AMOUNT_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    ("english_amount", re.compile(rf"(?:with\s+amount|amount\s+of|amount\s+is|amount)\s+{NUMBER}", re.IGNORECASE)),
    ("arabic_value", re.compile(rf"(?:{_alternation(('بقيمة', 'بمبلغ', 'قيمة', 'مبلغ'))})\s+{NUMBER}")),
    ("arabic_amount_label", re.compile(rf"(?:المبلغ|مبلغ)\s*:\s*(?:[{ARABIC_RANGE}\s]*?)\s*{NUMBER}")),
    (
        "riyal_name_before",
        re.compile(rf"(?:{_alternation(('ريال سعودي', 'ريال عماني', 'ريال قطري', 'ريال يمني', 'ريال'))})\s+{NUMBER}"),
    ),
    (
        "currency_name_before",
        re.compile(rf"(?:{_alternation(('درهم', 'جنيه', 'دينار', 'ليرة'))})\s*(?:[{ARABIC_RANGE}]+)?\s+{NUMBER}"),
    ),
    (
        "currency_name_after",
        re.compile(rf"{NUMBER}\s*(?:{_alternation(('دينار', 'ريال', 'درهم', 'جنيه', 'ليرة'))})"),
    ),
    ("currency_code_before", re.compile(rf"(?<![A-Za-z])(?:{_CODES})\s*{NUMBER}", re.IGNORECASE)),
    ("currency_code_after", re.compile(rf"{NUMBER}\s*(?:{_CODES})(?![A-Za-z])", re.IGNORECASE)),
    ("currency_symbol_before", re.compile(rf"(?:{_SYMBOLS})\s*{NUMBER}")),
    ("currency_symbol_after", re.compile(rf"{NUMBER}\s*(?:{_SYMBOLS})")),
]


def parse_amount_literal(raw: str) -> Optional[float]:
    s = (raw or "").replace(",", "").strip()
    if not s:
        return None
    try:
        value = float(s)
    except ValueError:
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def is_near_balance_keyword(text: str, index: int) -> bool:
    prefix = text[max(0, index - BALANCE_LOOKBACK):index].lower()
    return any(kw in prefix for kw in BALANCE_KEYWORDS)


def find_amount(text: str) -> Tuple[Optional[str], Optional[float]]:
    """
    Returns (family_id, amount) for already westernized text.
    family_id is set whenever a family was selected, even if every candidate
    in it sat next to a balance keyword and the amount is None.
    """
    for family_id, rgx in AMOUNT_PATTERNS:
        selected = False
        for m in rgx.finditer(text):
            value = parse_amount_literal(m.group(1))
            if value is None:
                continue
            selected = True
            if is_near_balance_keyword(text, m.start()):
                continue
            return family_id, value
        if selected:
            # Ambiguous: only balance figures in the winning family.
            return family_id, None
    return None, None


def extract_amount(text: str) -> Optional[float]:
    westernized = westernize_digits(normalize_arabic(flatten_text(text)))
    _, amount = find_amount(westernized)
    return amount


# ----------------- Direction -----------------

DEBIT_KEYWORDS = (
    "deducted", "charged", "debit", "spent", "purchase", "payment", "paid",
    "تم خصم", "مدين", "مشتريات", "دفع", "سداد", "شراء", "خصم", "خصم نهائي",
    "حجز مبلغ", "عملية شراء", "تسديد", "سحب", "صرف",
)
CREDIT_KEYWORDS = (
    "received", "credited", "credit", "deposited", "refund", "salary",
    "تم إيداع", "دائن", "استرداد", "إيداع", "راتب",
)


def _contains_any(keywords: Iterable[str], normalized_lower: str, flat_lower: str) -> bool:
    for kw in keywords:
        kw = kw.lower()
        if kw in flat_lower or normalize_arabic(kw) in normalized_lower:
            return True
    return False


def classify_direction(text: str) -> str:
    flat_lower = flatten_text(text).lower()
    normalized_lower = normalize_arabic(flat_lower)
    # Debit wins whenever both kinds of keyword are present, e.g. a purchase
    # alert that also mentions the credited balance.
    if _contains_any(DEBIT_KEYWORDS, normalized_lower, flat_lower):
        return "debit"
    if _contains_any(CREDIT_KEYWORDS, normalized_lower, flat_lower):
        return "credit"
    return "debit"


# ----------------- Merchant -----------------

MERCHANT_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    ("arabic_from_label", re.compile(r"من\s*:\s*(.{2,40})$")),
    ("arabic_from_name", re.compile(r"من\s+([A-Za-z0-9*.\-\s&']+?)(?:\s+في\b|\s+بتاريخ|$)", re.IGNORECASE)),
    (
        "english_at_from",
        re.compile(
            r"(?:\bat|\bfrom|@)\s+([A-Za-z0-9\s\-&'.*]+?)"
            r"(?:\s+on\b|\s+dated?\b|\s+\d|\s+ref\b|\s+and\b|\.(?:\s|$)|$)",
            re.IGNORECASE,
        ),
    ),
    ("arabic_at", re.compile(rf"لدى\s+([{ARABIC_RANGE}\s]+?)(?:\s+بتاريخ|\s+الرصيد|\.\s|$)")),
    (
        "merchant_label",
        re.compile(r"merchant\s*:\s*([A-Za-z0-9\s\-&'.]+?)(?:\s*\.\s+|\s+date\b|\s+ref\b|$)", re.IGNORECASE),
    ),
    (
        "english_to",
        re.compile(
            r"\b(?:payment\s+to|to)\s+([A-Za-z0-9\s\-&'.]+?)(?:\s+on\b|\s+ref\b|\s+was\b|\.(?:\s|$)|$)",
            re.IGNORECASE,
        ),
    ),
    ("pos_purchase", re.compile(r"(?:\bPOS|\bpurchase|مشتريات)\s*:?\s*([A-Za-z0-9\s\-&'.]{2,30})", re.IGNORECASE)),
]

PENDING_SUFFIX_RE = re.compile(r"\s*\*\s*PENDING\b.*", re.IGNORECASE)
MERCHANT_MIN_LEN = 2
MERCHANT_MAX_LEN = 50


def clean_merchant(raw: str) -> str:
    value = flatten_text(raw)
    return PENDING_SUFFIX_RE.sub("", value).strip()


def title_case_latin(value: str) -> str:
    words = []
    for w in value.split(" "):
        if re.match(r"[A-Za-z]", w):
            w = w[:1].upper() + w[1:].lower()
        words.append(w)
    return " ".join(words)


def find_merchant(text: str) -> Tuple[Optional[str], str]:
    flat = flatten_text(text)
    for family_id, rgx in MERCHANT_PATTERNS:
        m = rgx.search(flat)
        if not m:
            continue
        candidate = clean_merchant(m.group(1))
        if MERCHANT_MIN_LEN <= len(candidate) <= MERCHANT_MAX_LEN:
            return family_id, title_case_latin(candidate)
    return None, UNKNOWN_MERCHANT


def extract_merchant(text: str) -> str:
    _, merchant = find_merchant(text)
    return merchant


# ----------------- Whole message -----------------

def analyze_sms(
    text: str,
    sender_id: Optional[str] = None,
    default_currency: str = DEFAULT_CURRENCY,
) -> Tuple[str, Optional[ParsedTransaction]]:
    """
    Run the full pipeline on one message.

    Returns (status, transaction). status tells apart a message that is not a
    bank notification at all from one that looked financial but had no usable
    amount. sender_id is metadata for the caller and does not influence
    parsing or the content hash.
    """
    if not is_financial_sms(text):
        return STATUS_NOT_FINANCIAL, None

    amount = extract_amount(text)
    if amount is None:
        return STATUS_UNPARSEABLE, None

    tx = ParsedTransaction(
        amount=amount,
        currency=detect_currency(text, default_currency),
        merchant=extract_merchant(text),
        direction=classify_direction(text),
        raw_text=text,
        content_hash=compute_hash(text),
    )
    return STATUS_PARSED, tx


def parse_sms(
    text: str,
    sender_id: Optional[str] = None,
    default_currency: str = DEFAULT_CURRENCY,
) -> Optional[ParsedTransaction]:
    _, tx = analyze_sms(text, sender_id, default_currency)
    return tx
