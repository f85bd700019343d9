from typing import Dict, Optional, Tuple

# Enumeration order is the tie-break: a text matching Food and Shopping
# keywords is Food.
ALL_CATEGORIES: Tuple[str, ...] = (
    "Food",
    "Transport",
    "Shopping",
    "Bills",
    "Health",
    "Entertainment",
    "Education",
    "Misc",
)

FALLBACK_CATEGORY = "Misc"

CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "Food": (
        "mcdonald", "mcdonalds", "burger king", "kfc", "pizza hut", "dominos",
        "subway", "starbucks", "dunkin", "costa", "jarir bakery", "shutter",
        "restaurant", "cafe", "coffee", "bakery", "kitchen", "grill", "food",
        "lunch", "dinner", "breakfast", "meal", "shawarma", "falafel",
        "مطعم", "كافيه", "قهوة", "مخبز", "وجبة", "أكل", "طعام",
        "noon food", "hungerstation", "jahez", "toyor",
    ),
    "Transport": (
        "uber", "careem", "taxi", "lyft", "gas", "petrol", "fuel", "aramco",
        "salik", "parking", "metro", "bus", "train", "airline", "saudia",
        "flynas", "flyadeal", "riyadh airport", "jeddah airport",
        "سيارة", "تاكسي", "وقود", "محطة", "طيران", "مطار",
    ),
    "Shopping": (
        "amazon", "noon", "namshi", "sivvi", "shein", "h&m", "zara",
        "aldo", "nike", "adidas", "puma", "apple store", "samsung",
        "extra", "jarir", "lulu", "carrefour", "hyper", "mall",
        "ikea", "danube", "tamimi", "bin dawood",
        "تسوق", "متجر", "محل", "بوتيك",
    ),
    "Bills": (
        "stc", "mobily", "zain", "electricity", "water", "sec", "sewage",
        "dewa", "kahramaa", "internet", "broadband", "subscription",
        "netflix", "spotify", "apple", "google play", "microsoft",
        "insurance", "bank charge", "fee", "annual",
        "فاتورة", "اشتراك", "كهرباء", "مياه", "اتصالات",
    ),
    "Health": (
        "pharmacy", "hospital", "clinic", "doctor", "medical",
        "dentist", "vision", "lab", "nahdi", "al dawaa", "binzagr",
        "chemist", "health",
        "صيدلية", "مستشفى", "عيادة", "طبيب", "دواء",
    ),
    "Entertainment": (
        "cinema", "vox", "muvi", "imax", "reel", "bowl", "game",
        "playstation", "xbox", "steam", "netflix", "spotify", "anghami",
        "shahid", "sports", "gym", "fitness",
        "سينما", "ترفيه", "ألعاب", "رياضة",
    ),
    "Education": (
        "university", "college", "school", "tuition", "course", "udemy",
        "coursera", "book", "stationary",
        "جامعة", "مدرسة", "تعليم", "كتاب",
    ),
    "Misc": (),
}


def map_category(merchant: str, raw_text: Optional[str] = None) -> str:
    combined = f"{merchant or ''} {raw_text or ''}".lower()
    for category in ALL_CATEGORIES:
        if category == FALLBACK_CATEGORY:
            continue
        for keyword in CATEGORY_KEYWORDS[category]:
            if keyword in combined:
                return category
    return FALLBACK_CATEGORY


def is_category(name: Optional[str]) -> bool:
    return name in ALL_CATEGORIES
