"""Audio track language normalization.

Providers report track languages as ISO 639-1 codes ("en"), ISO 639-2
codes ("eng"), or display names ("English"). Canonical records use
ISO 639-2/B.
"""

from typing import Optional

# (ISO 639-1, ISO 639-2/B, English name)
_LANGUAGES = (
    ("en", "eng", "english"),
    ("es", "spa", "spanish"),
    ("fr", "fre", "french"),
    ("de", "ger", "german"),
    ("it", "ita", "italian"),
    ("pt", "por", "portuguese"),
    ("ru", "rus", "russian"),
    ("ja", "jpn", "japanese"),
    ("ko", "kor", "korean"),
    ("zh", "chi", "chinese"),
    ("ar", "ara", "arabic"),
    ("hi", "hin", "hindi"),
    ("nl", "dut", "dutch"),
    ("pl", "pol", "polish"),
    ("tr", "tur", "turkish"),
    ("sv", "swe", "swedish"),
    ("da", "dan", "danish"),
    ("no", "nor", "norwegian"),
    ("fi", "fin", "finnish"),
    ("cs", "cze", "czech"),
    ("hu", "hun", "hungarian"),
    ("ro", "rum", "romanian"),
    ("th", "tha", "thai"),
    ("vi", "vie", "vietnamese"),
    ("id", "ind", "indonesian"),
    ("he", "heb", "hebrew"),
    ("el", "gre", "greek"),
    ("uk", "ukr", "ukrainian"),
    ("ca", "cat", "catalan"),
    ("sk", "slo", "slovak"),
    ("hr", "hrv", "croatian"),
    ("sr", "srp", "serbian"),
    ("bg", "bul", "bulgarian"),
    ("lt", "lit", "lithuanian"),
    ("lv", "lav", "latvian"),
    ("et", "est", "estonian"),
    ("sl", "slv", "slovenian"),
    ("fa", "per", "persian"),
    ("ms", "may", "malay"),
    ("ta", "tam", "tamil"),
    ("te", "tel", "telugu"),
    ("bn", "ben", "bengali"),
    ("mr", "mar", "marathi"),
)

ISO_639_1_TO_639_2 = {two: three for two, three, _ in _LANGUAGES}
LANGUAGE_NAME_TO_639_2 = {name: three for _, three, name in _LANGUAGES}

# ISO 639-2/T spellings some tools emit instead of the /B code
_TERMINOLOGIC_TO_BIBLIOGRAPHIC = {
    "fra": "fre",
    "deu": "ger",
    "zho": "chi",
    "nld": "dut",
    "ces": "cze",
    "ron": "rum",
    "ell": "gre",
    "slk": "slo",
    "fas": "per",
    "msa": "may",
}

UNDETERMINED = {"und", "unk", "unknown", "xx", "mis", "zxx"}


def normalize_language(value: Optional[str]) -> Optional[str]:
    """Normalize a track language to a 3-letter ISO 639-2/B code.

    Args:
        value: Code or name as reported by the provider

    Returns:
        3-letter code, the lower-cased input when unrecognized, or None for
        missing/undetermined languages
    """
    if not value or not value.strip():
        return None

    lower = value.strip().lower()
    if lower in UNDETERMINED:
        return None
    if len(lower) == 2:
        return ISO_639_1_TO_639_2.get(lower, lower)
    if len(lower) == 3:
        return _TERMINOLOGIC_TO_BIBLIOGRAPHIC.get(lower, lower)
    return LANGUAGE_NAME_TO_639_2.get(lower, lower)
