"""
config/rules.py
──────────────────────────────────────────────────────────────────────────────
Static keyword tables used by the relevance classifier.

The tables are matched case-insensitively against a program's searchable
text (name, description, source, categories, measures and jurisdictions).
Keywords of four characters or fewer (efre, esf, gak …) must match a whole
word; longer keywords match anywhere, so German compounds such as
"Kinderspielplatz" still hit "spielplatz".

Changing any table is a rule change: bump RULE_VERSION in the environment
so previously cached classifications are not reused.

The default domain is public playground / outdoor-fitness construction in
Germany, which is what the bundled catalog describes.
"""
from __future__ import annotations

from dataclasses import dataclass

# Universal jurisdiction marker: the program is available in every region.
WILDCARD_REGION = "all"

# ISO 3166-2:DE subdivision codes used by the bundled catalog.
REGION_CODES: frozenset[str] = frozenset({
    "BW", "BY", "BE", "BB", "HB", "HH", "HE", "MV",
    "NI", "NW", "RP", "SL", "SN", "ST", "SH", "TH",
})


@dataclass(frozen=True)
class ClassificationRules:
    """Versioned keyword tables driving tier assignment."""

    version: str = "3"

    # Categories that mark a program as funding the project domain.
    domain_categories: tuple[str, ...] = ("playground",)

    # Free-text evidence that a program has funded the domain before.
    domain_keywords: tuple[str, ...] = (
        "spielplatz", "playground", "spielgerät", "spielfläche",
        "kinderspielplatz", "spielbereich", "spielanlage", "outdoor-fitness",
        "bewegungspark", "mehrgenerationenspielplatz",
    )

    # Measures that mark a program as domain-relevant on their own.
    domain_measures: tuple[str, ...] = ("newBuild", "renovation", "accessibility")

    # Name fragments that lift a nationwide program one tier.
    domain_name_keywords: tuple[str, ...] = (
        "spielplatz", "kinderhilfswerk", "spielraum",
    )

    exclusion_keywords: tuple[str, ...] = (
        "hochschule", "universität", "forschung", "wissenschaft", "studium",
        "digitalisierung", "breitband", "software", "it-infrastruktur",
        "landwirtschaft", "agrar", "forstwirtschaft", "fischerei",
        "industrie 4.0", "künstliche intelligenz", "blockchain",
        "wasserwirtschaft", "hochwasserschutz", "deichbau",
        "verkehrsinfrastruktur", "straßenbau", "schienenverkehr",
        "energieeffizienz", "photovoltaik", "windenergie", "wärmepumpe",
    )

    # Facility types that exclude a program unless its category or text names
    # the domain; offering domain measures alone does not lift the exclusion.
    facility_exclusion_keywords: tuple[str, ...] = ("sportstätten",)

    # Categories that exclude a program unless it also carries a domain category.
    excluded_categories: tuple[str, ...] = ("research",)

    state_indicators: tuple[str, ...] = (
        "landesförderprogramm", "landesprogramm", "landesförderung",
    )

    eu_federal_indicators: tuple[str, ...] = (
        "efre", "eler", "esf", "europäischer fonds", "eu-förderung",
        "bundesförderung", "bundesprogramm", "gak", "städtebauförderung",
        "leader", "dorferneuerung", "nationale projekte", "modellvorhaben",
        "bundesmittel",
    )

    private_indicators: tuple[str, ...] = (
        "stiftung", "lotto", "aktion mensch", "kinderhilfswerk",
        "fernsehlotterie", "bingo",
    )

    municipal_indicators: tuple[str, ...] = (
        "kommunal", "kommunen", "gemeinde", "landkreis",
    )


DEFAULT_RULES = ClassificationRules()
