"""Best-effort English inflection of BrAPI field names.

BrAPI search bodies use plural names (``germplasmDbIds``) for fields the
datatype schema declares in singular form (``germplasmDbId``).  These helpers
only touch the trailing camelCase word, so ``studyDbIds`` becomes
``studyDbId`` and ``study`` becomes ``studies``.

Pure string transforms: a miss never raises, callers simply try the other
form and give up.

Usage:
    from brapi_mapper.mapping.inflector import plural, singular

    plural("germplasmDbId")   # 'germplasmDbIds'
    singular("studies")       # 'study'
"""

import re

_IRREGULAR: dict[str, str] = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "foot": "feet",
    "tooth": "teeth",
    "mouse": "mice",
    "criterion": "criteria",
    "datum": "data",
    "index": "indices",
}
_IRREGULAR_SINGULAR: dict[str, str] = {v: k for k, v in _IRREGULAR.items()}

# Words with identical singular and plural forms
_UNCOUNTABLE: frozenset[str] = frozenset(
    {"germplasm", "info", "information", "metadata", "series", "species", "data"}
)

_VOWELS = "aeiou"
_LAST_WORD = re.compile(r"([A-Z]?[a-z0-9]*|[A-Z]+)$")


def _split(name: str) -> tuple[str, str]:
    """Split *name* into (prefix, trailing camelCase word)."""
    match = _LAST_WORD.search(name)
    if not match or not match.group(1):
        return name, ""
    return name[: match.start(1)], match.group(1)


def _match_case(source: str, target: str) -> str:
    """Copy the capitalization of *source* onto *target*."""
    if source.isupper() and len(source) > 1:
        return target.upper()
    if source[:1].isupper():
        return target[:1].upper() + target[1:]
    return target


def plural(name: str) -> str:
    """Return the plural form of *name*."""
    prefix, word = _split(name)
    if not word:
        return name
    lower = word.lower()

    if lower in _UNCOUNTABLE or lower in _IRREGULAR_SINGULAR:
        return name
    if lower.endswith("ies") and len(lower) > 3:
        # Already plural (studies)
        return name
    if lower in _IRREGULAR:
        return prefix + _match_case(word, _IRREGULAR[lower])
    if lower.endswith("y") and len(lower) > 1 and lower[-2] not in _VOWELS:
        return prefix + word[:-1] + "ies"
    if lower.endswith(("s", "x", "z", "ch", "sh")):
        return prefix + word + "es"
    return prefix + word + "s"


def singular(name: str) -> str:
    """Return the singular form of *name*."""
    prefix, word = _split(name)
    if not word:
        return name
    lower = word.lower()

    if lower in _UNCOUNTABLE:
        return name
    if lower in _IRREGULAR_SINGULAR:
        return prefix + _match_case(word, _IRREGULAR_SINGULAR[lower])
    if lower in _IRREGULAR:
        return name
    if lower.endswith("ies") and len(lower) > 3:
        return prefix + word[:-3] + "y"
    if lower.endswith(("sses", "xes", "zes", "ches", "shes")):
        return prefix + word[:-2]
    if lower.endswith(("ss", "us", "is")):
        return name
    if lower.endswith("s") and len(lower) > 1:
        return prefix + word[:-1]
    return name


def name_variants(name: str) -> list[str]:
    """Return ``[name, plural, singular]`` without duplicates, in that order."""
    variants: list[str] = []
    for candidate in (name, plural(name), singular(name)):
        if candidate not in variants:
            variants.append(candidate)
    return variants
