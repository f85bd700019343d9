import re

# Tashkil (short vowels, shadda, sukun) and the other combining marks in the block.
DIACRITICS_RE = re.compile(r"[\u064B-\u065F]")

_LETTER_MAP = str.maketrans({
    "آ": "ا",  # alef madda
    "أ": "ا",  # alef hamza above
    "إ": "ا",  # alef hamza below
    "ى": "ي",  # alef maksura -> ya
    "ة": "ه",  # ta marbuta -> ha
})

_DIGIT_MAP = str.maketrans({
    **{chr(0x0660 + i): str(i) for i in range(10)},
    **{chr(0x06F0 + i): str(i) for i in range(10)},
    "٫": ".",  # arabic decimal separator
    "٬": ",",  # arabic thousands separator
})


def flatten_text(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def strip_diacritics(text: str) -> str:
    return DIACRITICS_RE.sub("", text)


def unify_letters(text: str) -> str:
    return text.translate(_LETTER_MAP)


def normalize_arabic(text: str) -> str:
    """
    Lossy normalization used for matching only; display keeps the raw text.
    """
    return unify_letters(strip_diacritics(text or "")).strip()


def westernize_digits(text: str) -> str:
    return text.translate(_DIGIT_MAP)


def normalize_for_amount(text: str) -> str:
    return westernize_digits(normalize_arabic(flatten_text(text)))
