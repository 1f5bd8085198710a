"""
Street name and address normalizers.

Provides implementations for cleaning street names before they are matched
against OpenStreetMap names, and for turning announcement addresses into
forward-geocoding queries.
"""

import re
from enum import StrEnum
from typing import Optional

from .base import Normalizer

# Every quotation variant seen in announcements (ASCII, typographic, guillemets)
_QUOTES = "\"'`“”„‟‘’‚‛«»‹›"
_RE_QUOTES = re.compile(f"[{re.escape(_QUOTES)}]")
_RE_WS = re.compile(r"\s+")

# Street-type prefix tokens, Bulgarian and transliterated
_RE_PREFIX = re.compile(
    r"^(?:(?:бул\.|булевард\b|ул\.|улица\b|площад\b|пл\.|blvd\.|bul\.|ul\.|str\.|sq\.|boulevard\b|street\b|square\b)\s*)+"
)

_RE_SQUARE = re.compile(r"^(?:площад|пл\.)")
_RE_STREET = re.compile(r"(?:^|[\s,(])ул\.")


class StreetDesignator(StrEnum):
    """Street-type hint carried by the leading token of a street name."""
    SQUARE = "square"
    STREET = "street"
    OTHER = "other"

    @classmethod
    def detect(cls, street_name: str) -> "StreetDesignator":
        lowered = street_name.strip().lower()
        if _RE_SQUARE.match(lowered):
            return cls.SQUARE
        # 'ул.' as its own token; 'бул.' must not count
        if _RE_STREET.search(lowered):
            return cls.STREET
        return cls.OTHER


class StreetNameNormalizer(Normalizer):
    """
    Normalize a street name for OSM name matching.

    Strips boulevard/street/square prefix tokens and all quotation marks,
    lowercases and collapses whitespace. Applying it twice gives the same
    result as applying it once.

    Examples:
        'бул. „Витоша"'        → 'витоша'
        'ул.  "Оборище"'       → 'оборище'
        'пл. „Св. Неделя"'     → 'св. неделя'
    """

    def normalize(self, value: str) -> str:
        if not value:
            return ""
        text = _RE_QUOTES.sub("", value)
        text = _RE_WS.sub(" ", text.lower()).strip()
        text = _RE_PREFIX.sub("", text)
        return _RE_WS.sub(" ", text).strip()


class AddressNormalizer(Normalizer):
    """
    Turn an announcement address into a forward-geocoding query.

    Smart quotes become ASCII, '№' becomes a space, '&' becomes 'and',
    whitespace is collapsed and the city/country suffix is appended when
    missing.
    """

    def __init__(self, city: str = "Sofia", country: str = "Bulgaria"):
        self.city = city
        self.country = country

    def normalize(self, value: str) -> str:
        text = re.sub("[„“”]", '"', value or "")
        text = re.sub("[‘’]", "'", text)
        text = text.replace("№", " ").replace("&", "and")
        text = _RE_WS.sub(" ", text).strip()

        lowered = text.lower()
        has_city = self.city.lower() in lowered
        has_country = self.country.lower() in lowered
        if not has_city and not has_country:
            text = f"{text}, {self.city}, {self.country}"
        elif has_city and not has_country:
            text = f"{text}, {self.country}"
        return text


_default_street = StreetNameNormalizer()
_default_address = AddressNormalizer()


def normalize_street_name(value: str) -> str:
    return _default_street.normalize(value)


def normalize_address(value: str, city: Optional[str] = None, country: Optional[str] = None) -> str:
    if city is None and country is None:
        return _default_address.normalize(value)
    return AddressNormalizer(city or "Sofia", country or "Bulgaria").normalize(value)


def has_house_number(text: str) -> bool:
    """True when the text carries a building number (e.g. 'ул. Оборище 12', '№ 5')."""
    return bool(re.search(r"\d", text or ""))
