"""Country to region lookup.

Names here are the catalog's canonical spellings. Transcontinental countries
(Russia, Turkey) are listed under both Europe and Asia; ``region_of`` returns
the first match in table order.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Mapping

__all__ = [
    "Region",
    "REGION_COUNTRIES",
    "region_of",
    "countries_of",
    "selectable_regions",
    "is_in_region",
    "parse_region",
]


class Region(str, Enum):
    WORLD = "world"
    EUROPE = "europe"
    ASIA = "asia"
    NORTH_AMERICA = "north_america"
    SOUTH_AMERICA = "south_america"
    AFRICA = "africa"
    OCEANIA = "oceania"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


REGION_COUNTRIES: Mapping[Region, tuple[str, ...]] = {
    Region.EUROPE: (
        "United Kingdom", "France", "Germany", "Italy", "Spain",
        "Netherlands", "Belgium", "Austria", "Switzerland", "Portugal",
        "Ireland", "Luxembourg",
        "Sweden", "Norway", "Denmark", "Finland", "Iceland", "Estonia",
        "Latvia", "Lithuania",
        "Poland", "Czech Republic", "Slovakia", "Hungary", "Romania",
        "Bulgaria", "Croatia", "Slovenia", "Serbia",
        "Bosnia and Herzegovina", "Montenegro", "North Macedonia",
        "Albania", "Ukraine", "Belarus", "Moldova",
        "Greece", "Cyprus", "Malta", "Vatican City", "San Marino",
        "Monaco", "Andorra",
        "Russia", "Turkey",
    ),
    Region.ASIA: (
        "China", "Japan", "South Korea", "North Korea", "Mongolia",
        "Taiwan",
        "Indonesia", "Philippines", "Vietnam", "Thailand", "Malaysia",
        "Singapore", "Myanmar", "Cambodia", "Laos", "Brunei",
        "Timor-Leste",
        "India", "Pakistan", "Bangladesh", "Sri Lanka", "Nepal", "Bhutan",
        "Maldives", "Afghanistan",
        "Kazakhstan", "Uzbekistan", "Turkmenistan", "Kyrgyzstan",
        "Tajikistan",
        "Saudi Arabia", "United Arab Emirates", "Qatar", "Kuwait",
        "Bahrain", "Oman", "Yemen", "Iraq", "Iran", "Jordan", "Lebanon",
        "Syria", "Israel", "Palestine",
        "Russia", "Turkey",
        "Georgia", "Armenia", "Azerbaijan",
    ),
    Region.NORTH_AMERICA: (
        "United States", "Canada", "Mexico",
        "Guatemala", "Belize", "El Salvador", "Honduras", "Nicaragua",
        "Costa Rica", "Panama",
        "Cuba", "Jamaica", "Haiti", "Dominican Republic", "Puerto Rico",
        "Trinidad and Tobago", "Barbados", "Saint Lucia", "Grenada",
        "Saint Vincent and the Grenadines", "Antigua and Barbuda",
        "Dominica", "Saint Kitts and Nevis", "Bahamas",
    ),
    Region.SOUTH_AMERICA: (
        "Brazil", "Argentina", "Chile", "Colombia", "Peru", "Venezuela",
        "Ecuador", "Bolivia", "Paraguay", "Uruguay", "Guyana", "Suriname",
        "French Guiana",
    ),
    Region.AFRICA: (
        "Egypt", "Libya", "Tunisia", "Algeria", "Morocco", "Sudan",
        "Nigeria", "Ghana", "Senegal", "Mali", "Burkina Faso", "Niger",
        "Guinea", "Sierra Leone", "Liberia", "Ivory Coast", "Togo", "Benin",
        "Mauritania", "Gambia", "Guinea-Bissau", "Cape Verde",
        "Kenya", "Tanzania", "Uganda", "Rwanda", "Burundi", "Ethiopia",
        "Somalia", "Djibouti", "Eritrea", "South Sudan", "Seychelles",
        "Comoros", "Mauritius", "Madagascar",
        "Democratic Republic of the Congo", "Congo",
        "Central African Republic", "Chad", "Cameroon",
        "Equatorial Guinea", "Gabon", "São Tomé and Príncipe",
        "South Africa", "Zimbabwe", "Zambia", "Botswana", "Namibia",
        "Lesotho", "Eswatini", "Angola", "Mozambique", "Malawi",
    ),
    Region.OCEANIA: (
        "Australia", "New Zealand",
        "Papua New Guinea", "Fiji", "Solomon Islands", "Vanuatu",
        "New Caledonia",
        "Micronesia", "Marshall Islands", "Palau", "Nauru", "Kiribati",
        "Samoa", "Tonga", "Tuvalu", "Cook Islands", "French Polynesia",
    ),
}

_SELECTABLE: tuple[Region, ...] = (
    Region.EUROPE,
    Region.ASIA,
    Region.NORTH_AMERICA,
    Region.SOUTH_AMERICA,
    Region.AFRICA,
    Region.OCEANIA,
)


@lru_cache(maxsize=None)
def _name_index() -> Mapping[str, Region]:
    index: dict[str, Region] = {}
    for region in _SELECTABLE:
        for name in REGION_COUNTRIES[region]:
            index.setdefault(name, region)
    return index


def region_of(name: str) -> Region:
    """Return the region for ``name``, or WORLD when it is not mapped."""

    return _name_index().get(name, Region.WORLD)


def countries_of(region: Region) -> frozenset[str]:
    """Return the country names of ``region``; WORLD is the union."""

    if region is Region.WORLD:
        return frozenset(_name_index())
    return frozenset(REGION_COUNTRIES.get(region, ()))


def selectable_regions() -> tuple[Region, ...]:
    return _SELECTABLE


def is_in_region(name: str, region: Region) -> bool:
    if region is Region.WORLD:
        return True
    return name in REGION_COUNTRIES.get(region, ())


def parse_region(text: str | Region) -> Region:
    """Parse a region from its value (``north_america``) or enum name."""

    if isinstance(text, Region):
        return text
    cleaned = str(text).strip().lower().replace("-", "_").replace(" ", "_")
    for region in Region:
        if cleaned in (region.value, region.name.lower()):
            return region
    choices = ", ".join(region.value for region in Region)
    raise ValueError(f"Unknown region '{text}'. Expected one of: {choices}.")
