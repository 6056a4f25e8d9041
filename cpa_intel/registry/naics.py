"""NAICS sector labels (two-digit codes)."""

from typing import Optional

NAICS_SECTORS = {
    "11": "Agriculture, Forestry, Fishing and Hunting",
    "21": "Mining, Quarrying, and Oil and Gas Extraction",
    "22": "Utilities",
    "23": "Construction",
    "31": "Manufacturing",
    "32": "Manufacturing",
    "33": "Manufacturing",
    "41": "Wholesale Trade",
    "42": "Wholesale Trade",
    "44": "Retail Trade",
    "45": "Retail Trade",
    "48": "Transportation and Warehousing",
    "49": "Transportation and Warehousing",
    "51": "Information and Cultural Industries",
    "52": "Finance and Insurance",
    "53": "Real Estate and Rental and Leasing",
    "54": "Professional, Scientific and Technical Services",
    "55": "Management of Companies and Enterprises",
    "56": "Administrative and Support, Waste Management and Remediation Services",
    "61": "Educational Services",
    "62": "Health Care and Social Assistance",
    "71": "Arts, Entertainment and Recreation",
    "72": "Accommodation and Food Services",
    "81": "Other Services (except Public Administration)",
    "91": "Public Administration",
    "92": "Public Administration",
}

UNKNOWN = "Unknown"
OTHER = "Other"


def industry_label(code: Optional[str]) -> str:
    """Map any NAICS code to its sector label: "541211" -> "Professional, ..."."""
    if code is None:
        return UNKNOWN
    digits = "".join(ch for ch in str(code) if ch.isdigit())
    if not digits:
        return UNKNOWN
    return NAICS_SECTORS.get(digits[:2], OTHER)
