"""Name normalization, identity hashing, designation parsing, and contact helpers."""

import hashlib
import re

PROVINCES = {
    "AB": "Alberta",
    "BC": "British Columbia",
    "MB": "Manitoba",
    "NB": "New Brunswick",
    "NL": "Newfoundland and Labrador",
    "NS": "Nova Scotia",
    "NT": "Northwest Territories",
    "NU": "Nunavut",
    "ON": "Ontario",
    "PE": "Prince Edward Island",
    "QC": "Quebec",
    "SK": "Saskatchewan",
    "YT": "Yukon",
}

# Common alternate spellings seen in registry extracts
_PROVINCE_ALIASES = {
    "québec": "QC",
    "que": "QC",
    "pq": "QC",
    "newfoundland": "NL",
    "nfld": "NL",
    "pei": "PE",
    "p.e.i.": "PE",
    "yukon territory": "YT",
    "nwt": "NT",
}

HONORIFICS = {"mr", "mrs", "ms", "miss", "mx", "dr", "prof", "sir", "madam", "mme", "m"}

# Credentials that show up after a member's name in CPA directories
DESIGNATIONS = {
    "CPA", "CA", "CMA", "CGA", "FCPA", "FCA", "FCMA", "FCGA", "CFA", "CIA",
    "CISA", "CFE", "CBV", "LPA", "MBA", "MACC", "MTAX", "PHD", "CFP", "TEP",
    "CIRP", "LIT", "ICD.D", "CPA-ON", "CPA-BC", "CPA-AB",
}

_MIXED_CASE_DESIGNATIONS = {"PhD", "MAcc", "MTax"}

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")

GENERIC_EMAIL_PREFIXES = {
    "info", "contact", "admin", "office", "hello", "mail", "reception",
    "support", "general", "enquiries", "inquiries", "accounts", "billing",
    "webmaster", "noreply", "no-reply", "careers", "jobs", "hr",
}

# Assets that look like addresses in page source (e.g. logo@2x.png)
_ASSET_SUFFIXES = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp", ".css", ".js")

LEGAL_SUFFIXES = [
    "professional corporation", "chartered professional accountants",
    "chartered accountants", "incorporated", "corporation", "limited",
    "company", "cpas", "cpa", "inc", "ltd", "llp", "corp", "pc", "lp", "co",
]


def normalize_name_key(full_name: str) -> str:
    """Reduce a person's name to lower-case letters only.

    Honorifics and single-letter initials are dropped so that
    "Dr. John D. SMITH" and "john smith" produce the same key.
    """
    tokens = re.split(r"[\s,]+", full_name.lower())
    kept = []
    for token in tokens:
        letters = re.sub(r"[^a-z]", "", token)
        if not letters or letters in HONORIFICS or len(letters) == 1:
            continue
        kept.append(letters)
    return "".join(kept)


def identity_hash(full_name: str, province: str) -> str:
    """Deterministic dedup key for a professional: SHA-256 of normalized (name, province)."""
    raw = f"{normalize_name_key(full_name)}|{province.strip().lower()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def business_identity_hash(
    name: str,
    city: str | None,
    province: str | None,
    registry_number: str | None = None,
) -> str:
    """Dedup key for a registry entity.

    Keyed on the registry's own number when there is one; otherwise on
    normalized (name, city, province).
    """
    if registry_number:
        raw = f"registry|{registry_number.strip().lower()}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()
    name_key = re.sub(r"[^a-z0-9]", "", name.lower())
    city_key = re.sub(r"[^a-z]", "", (city or "").lower())
    raw = f"{name_key}|{city_key}|{(province or '').strip().lower()}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def normalize_province(value: str | None) -> str | None:
    """Map a province name or code to its two-letter code."""
    if not value:
        return None
    cleaned = value.strip()
    if cleaned.upper() in PROVINCES:
        return cleaned.upper()
    lowered = cleaned.lower()
    for code, name in PROVINCES.items():
        if name.lower() == lowered:
            return code
    return _PROVINCE_ALIASES.get(lowered, cleaned)


def province_name(value: str | None) -> str:
    """Full province name for a code (returns the input unchanged when not a code)."""
    if not value:
        return ""
    return PROVINCES.get(value.strip().upper(), value.strip())


def clean_text(value: str | None) -> str:
    """Collapse runs of whitespace (incl. &nbsp;) and trim."""
    if not value:
        return ""
    return re.sub(r"\s+", " ", value.replace("\xa0", " ")).strip()


def is_designation_token(token: str) -> bool:
    """True if a token looks like a professional credential (CPA, CA, FCPA...)."""
    stripped = token.strip(" ,;()")
    if not stripped:
        return False
    if stripped in _MIXED_CASE_DESIGNATIONS:
        return True
    return stripped.isupper() and stripped.upper() in DESIGNATIONS


def split_designation(text: str) -> tuple[str, str]:
    """Split "John CPA, CA" into ("John", "CPA, CA").

    The designation starts at the first credential-looking token.
    """
    tokens = clean_text(text).split(" ")
    for i, token in enumerate(tokens):
        if i > 0 and is_designation_token(token):
            return " ".join(tokens[:i]).rstrip(","), " ".join(tokens[i:]).strip(" ,")
    return clean_text(text).rstrip(","), ""


def split_last_first(text: str) -> tuple[str, str, str]:
    """Parse "Smith, John CPA, CA" into (last, first, designation)."""
    text = clean_text(text)
    if "," not in text:
        first, last = split_full_name(text)
        return last, first, ""
    last, rest = text.split(",", 1)
    first, designation = split_designation(rest)
    return last.strip(), first.strip(), designation


def split_full_name(full_name: str) -> tuple[str, str]:
    """Split "John A. Smith" into ("John A.", "Smith")."""
    parts = clean_text(full_name).split(" ")
    if len(parts) == 1:
        return "", parts[0]
    return " ".join(parts[:-1]), parts[-1]


def strip_trailing_designation(full_name: str) -> tuple[str, str]:
    """Split "John Smith, CPA, CA" or "John Smith CPA" into (name, designation)."""
    text = clean_text(full_name)
    if "," in text:
        head, tail = text.split(",", 1)
        tail_tokens = [t for t in re.split(r"[\s,]+", tail) if t]
        if tail_tokens and all(is_designation_token(t) for t in tail_tokens):
            return head.strip(), tail.strip(" ,")
    name, designation = split_designation(text)
    return name, designation


def extract_emails(text: str) -> list[str]:
    """Find email-shaped substrings, de-duplicated in page order."""
    found = []
    seen = set()
    for match in EMAIL_PATTERN.findall(text):
        email = match.strip(".").lower()
        if email.endswith(_ASSET_SUFFIXES) or email in seen:
            continue
        seen.add(email)
        found.append(email)
    return found


def is_generic_email(email: str) -> bool:
    return email.split("@", 1)[0].lower() in GENERIC_EMAIL_PREFIXES


def pick_contact_email(emails: list[str], first_name: str = "", last_name: str = "") -> str | None:
    """Choose the best address for a person.

    Preference: an address mentioning the person's first or last name, then
    any non-generic address, then any address at all.
    """
    if not emails:
        return None

    name_parts = [
        re.sub(r"[^a-z]", "", part.lower())
        for part in (first_name, last_name)
    ]
    name_parts = [p for p in name_parts if len(p) >= 2]

    for email in emails:
        local = email.split("@", 1)[0].lower()
        if any(part in local for part in name_parts):
            return email

    for email in emails:
        if not is_generic_email(email):
            return email

    return emails[0]


def firm_domain_base(firm_name: str) -> str:
    """Strip legal suffixes and punctuation from a firm name: "Smith & Co. LLP" -> "smith"."""
    name = firm_name.lower().replace("&", " ")
    name = re.sub(r"[^a-z0-9\s]", " ", name)
    changed = True
    while changed:
        changed = False
        for suffix in LEGAL_SUFFIXES:
            if re.search(rf"\s{re.escape(suffix)}\s*$", name):
                name = re.sub(rf"\s{re.escape(suffix)}\s*$", "", name)
                changed = True
    return re.sub(r"[^a-z0-9]", "", name)


def guess_domains(firm_name: str) -> list[str]:
    """Plausible web domains for a firm name."""
    base = firm_domain_base(firm_name)
    if len(base) < 3:
        return []
    return [f"{base}.ca", f"{base}.com", f"www.{base}.ca"]
