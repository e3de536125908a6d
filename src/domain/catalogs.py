"""
Country catalog - Countries, dial codes and subdivisions for form selects.

Country and subdivision data come from pycountry (ISO 3166-1 / 3166-2);
international dial codes come from phonenumbers' region metadata. City
lists are not part of ISO 3166, so city selects use the options declared
in the form schema (``parent_value`` names the city's state).
"""

from functools import lru_cache
from typing import Optional

import phonenumbers
import pycountry

from .schema import FieldOption, Value


@lru_cache
def country_options() -> tuple[FieldOption, ...]:
    """All countries as select options (value = ISO-2 code), sorted by name."""
    options = {
        country.alpha_2: FieldOption(value=country.alpha_2, label=country.name)
        for country in pycountry.countries
    }
    return tuple(sorted(options.values(), key=lambda o: o.label))


def resolve_country_code(raw: Optional[Value]) -> Optional[str]:
    """
    Resolve a stored country value to an ISO-2 code.

    Accepts either the code itself ("co", "CO") or the country name
    ("Colombia"), since older records stored the label.
    """
    if not isinstance(raw, str) or not raw.strip():
        return None
    candidate = raw.strip()
    if len(candidate) == 2 and candidate.isalpha():
        country = pycountry.countries.get(alpha_2=candidate.upper())
        return country.alpha_2 if country is not None else None
    try:
        return pycountry.countries.lookup(candidate).alpha_2
    except LookupError:
        return None


def dial_code(country: Optional[Value]) -> str:
    """Formatted dial code for a country ("+57"), or "" when unknown."""
    code = resolve_country_code(country)
    if code is None:
        return ""
    calling_code = phonenumbers.country_code_for_region(code)
    return f"+{calling_code}" if calling_code else ""


@lru_cache
def state_options(country_code: str) -> tuple[FieldOption, ...]:
    """Top-level subdivisions of a country as select options (value = name)."""
    subdivisions = pycountry.subdivisions.get(country_code=country_code) or []
    names = {s.name for s in subdivisions if getattr(s, "parent_code", None) is None}
    return tuple(FieldOption(value=name, label=name) for name in sorted(names))


def state_for_city(city: Optional[Value], city_options: tuple[FieldOption, ...]) -> Optional[str]:
    """
    State of a selected city.

    City values may be stored as "City|State"; otherwise the state is the
    ``parent_value`` of the matching city option.
    """
    if not isinstance(city, str) or not city:
        return None
    if "|" in city:
        _, _, state = city.partition("|")
        return state or None
    for option in city_options:
        if option.value == city:
            return option.parent_value
    return None
