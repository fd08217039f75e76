"""
Question classification.

Maps an application question (or bare form-field label) to the strategy used
to build its prompt. Rules live in one ordered table and the first match wins:

    1. DATA_EXTRACTION  short factual labels ("Email", "LinkedIn URL", ...)
    2. COVER_LETTER     requests for a full letter
    3. WHY_COMPANY      motivation for this particular company/role
    4. GENERAL          everything else

Data extraction must stay first: it short-circuits before any narrative
instructions are built.

All regexes are anchored and use only bounded, non-nested quantifiers, and
labels are length-capped before matching, so matching stays linear on
adversarial input.
"""
from __future__ import annotations

import re
import string
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Tuple

# Field labels worth a literal lookup are short. Anything longer is prose.
MAX_DATA_LABEL_CHARS = 60

_TRAILING_MARKERS = "*:?∗✱" + string.whitespace
_LEADING_FILLER_RES = (
    re.compile(r"^please\s+(?:enter|provide|input|type|specify)\s+(?:your\s+)?", re.IGNORECASE),
    re.compile(r"^enter\s+(?:your\s+)?", re.IGNORECASE),
    re.compile(r"^your\s+", re.IGNORECASE),
)


class QuestionClass(str, Enum):
    DATA_EXTRACTION = "data_extraction"
    COVER_LETTER = "cover_letter"
    WHY_COMPANY = "why_company"
    GENERAL = "general"


def clean_field_label(raw: str | None) -> str:
    """
    Strip form-field artifacts so patterns match cleanly.

    "Please enter your Email*:" -> "Email"
    """
    label = (raw or "").strip()
    label = label.rstrip(_TRAILING_MARKERS)
    for pattern in _LEADING_FILLER_RES:
        label = pattern.sub("", label)
    return label.strip()


DATA_EXTRACTION_PATTERNS: Tuple[re.Pattern, ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # names
        r"^(?:full\s?)?name$",
        r"^(?:first|last|middle|legal|preferred|given|family)\s?name$",
        r"^name\s?(?:first|last|middle|legal)?$",
        r"^surname$",
        # contact
        r"^(?:e-?mail)(?:\s?address)?$",
        r"^(?:phone|telephone)(?:\s?number)?$",
        r"^(?:mobile|cell)(?:\s?(?:phone|number))?(?:\s?number)?$",
        r"^(?:street\s)?address(?:\s?line\s?[12])?$",
        r"^(?:city|state|province|zip|zip\s?code|postal\s?code|postcode|country)$",
        r"^(?:current\s)?location$",
        # links
        r"^linkedin(?:\s?(?:profile|url|link))?(?:\s?(?:url|link))?$",
        r"^github(?:\s?(?:profile|url|link|username))?(?:\s?(?:url|link))?$",
        r"^(?:personal\s)?(?:website|site)(?:\s?(?:url|link))?$",
        r"^(?:personal\s)?portfolio(?:\s?(?:url|link|website))?$",
        r"^(?:twitter|x|x\.com)(?:\s?(?:handle|profile|url|link))?$",
        r"^(?:url|link|profile\s?(?:url|link))$",
        r"^social\s?(?:media\s?)?(?:url|link|profile)$",
        r"^blog(?:\s?(?:url|link))?$",
        r"^(?:behance|dribbble|kaggle)(?:\s?(?:profile|url|link))?$",
        r"^stack\s?overflow(?:\s?(?:profile|url|link))?$",
        # employment facts
        r"^(?:current\s)?(?:job\s)?title$",
        r"^(?:current\s)?(?:company|employer)(?:\s?name)?$",
        r"^(?:date\s?of\s?)?birth(?:\s?date)?$",
        r"^date\s?of\s?birth$",
        r"^nationality$",
        r"^citizenship$",
        r"^visa\s?status$",
        r"^work\s?(?:authori[sz]ation|permit)$",
        r"^(?:current\s|expected\s|desired\s)?salary(?:\s?(?:expectations?|range|requirements?))?$",
        r"^notice\s?period$",
        r"^availability$",
        r"^(?:earliest\s)?start\s?date$",
        r"^years\s?of\s?experience$",
        r"^(?:highest\s)?(?:degree|education\s?level)$",
        r"^pronouns$",
    )
)

COVER_LETTER_PHRASES: Tuple[str, ...] = (
    "cover letter",
    "coverletter",
    "covering letter",
    "motivation letter",
    "motivational letter",
    "letter of motivation",
    "letter of interest",
    "application letter",
)

WHY_COMPANY_PHRASES: Tuple[str, ...] = (
    "why do you want",
    "why would you like",
    "why are you applying",
    "why are you interested",
    "what draws you",
    "what attracts you",
    "why this company",
    "why this role",
    "why our company",
    "company's mission",
    "why do you wish to join",
    "why join",
)


def is_data_extraction_label(question: str) -> bool:
    label = clean_field_label(question)
    if not label or len(label) > MAX_DATA_LABEL_CHARS:
        return False
    return any(p.match(label) for p in DATA_EXTRACTION_PATTERNS)


def _contains_any(phrases: Tuple[str, ...]) -> Callable[[str], bool]:
    def matcher(question: str) -> bool:
        q = (question or "").strip().lower()
        return any(phrase in q for phrase in phrases)

    return matcher


@dataclass(frozen=True)
class Rule:
    label: QuestionClass
    matches: Callable[[str], bool]


RULES: Tuple[Rule, ...] = (
    Rule(QuestionClass.DATA_EXTRACTION, is_data_extraction_label),
    Rule(QuestionClass.COVER_LETTER, _contains_any(COVER_LETTER_PHRASES)),
    Rule(QuestionClass.WHY_COMPANY, _contains_any(WHY_COMPANY_PHRASES)),
)


def classify(question: str | None) -> QuestionClass:
    text = question or ""
    for rule in RULES:
        if rule.matches(text):
            return rule.label
    return QuestionClass.GENERAL
