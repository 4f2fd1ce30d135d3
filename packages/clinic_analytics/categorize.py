"""Charge description -> service category classification.

Public API:
    - :data:`RULES` and :class:`Rule`: the ordered rule table
    - :func:`first_match`: the single generic matcher over a rule table
    - :class:`Categorizer` / :func:`categorize_transactions`
    - :func:`membership_type_for` and :func:`is_new_membership`

Descriptions are free text with overlapping vocabulary ("Semaglutide
Injection", "NAD+ Add-on (Member)"), so priority lives in the order of
:data:`RULES`: the first matching rule wins. Matching is case-insensitive
substring matching. Anything unmatched is ``other`` and is reported through
the unmapped-service side channel; it stays in revenue totals.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .ctv import CanonicalTransaction
from .logging_setup import get_logger
from .models import (
    CategorizationResult,
    CategorizedTransaction,
    Category,
    MembershipEvent,
    MembershipType,
    UnmappedService,
)

_logger = get_logger("clinic_analytics.categorize")


# ---- Rule table --------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Rule:
    """Assign ``category`` when any keyword occurs and no exclude does.

    Keywords and excludes are lower-case substrings; callers pass
    already-casefolded text to :meth:`matches`.
    """

    category: Category
    keywords: tuple[str, ...]
    excludes: tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        if any(x in text for x in self.excludes):
            return False
        return any(k in text for k in self.keywords)


WEIGHT_LOSS_TOKENS: tuple[str, ...] = ("semaglutide", "tirzepatide", "contrave")

RULES: tuple[Rule, ...] = (
    # Weight-loss meds are often given as injections; they must win over the
    # injection and infusion vocabularies below.
    Rule(Category.WEIGHT_LOSS_MEDICATION, WEIGHT_LOSS_TOKENS),
    Rule(
        Category.MEMBERSHIP_OR_ADMIN,
        ("membership", "lab", "office visit", "consultation"),
    ),
    Rule(
        Category.BASE_INFUSION,
        (
            "saline 1l",
            "hydration",
            "performance & recovery",
            "energy",
            "immunity",
            "alleviate",
            "all inclusive",
            "lux beauty",
            "methylene blue infusion",
        ),
    ),
    Rule(
        Category.STANDALONE_INJECTION,
        (
            "b12 injection",
            "metabolism boost injection",
            "vitamin d injection",
            "glutathione injection",
            "biotin injection",
            "xeomin",
        ),
        excludes=WEIGHT_LOSS_TOKENS,
    ),
    Rule(
        Category.INFUSION_ADDON,
        (
            "vitamin d3",
            "glutathione",
            "nad",
            "toradol",
            "magnesium",
            "vitamin b12",
            "zofran",
            "biotin",
            "vitamin c",
            "zinc",
        ),
    ),
)


def first_match(rules: Iterable[Rule], description: str) -> Category:
    """Return the category of the first rule matching ``description``."""

    text = description.casefold()
    for rule in rules:
        if rule.matches(text):
            return rule.category
    return Category.OTHER


# ---- Membership sub-classification -------------------------------------------

_MEMBERSHIP_TOKEN = "membership"

# Order matters: combined plans before their single-word components.
_MEMBERSHIP_TYPE_CHECKS: tuple[tuple[MembershipType, tuple[str, ...]], ...] = (
    (MembershipType.FAMILY_CONCIERGE, ("family", "concierge")),
    (MembershipType.DRIP_CONCIERGE, ("concierge", "drip")),
    (MembershipType.INDIVIDUAL, ("individual",)),
    (MembershipType.FAMILY, ("family",)),
    (MembershipType.CONCIERGE, ("concierge",)),
    (MembershipType.CORPORATE, ("corporate",)),
)

_NEW_MARKER_RE = re.compile(r"\(\s*new\s*\)", re.IGNORECASE)
_NEW_WORD_RE = re.compile(r"\bNEW\b")


def membership_type_for(description: str) -> MembershipType | None:
    """Plan type of a membership signup row, or ``None`` when not a signup.

    Only descriptions naming a membership count as signups; lab, office visit
    and consultation rows share the ``membership_or_admin`` category but are
    admin charges. The member pricing suffix "(Member)" is not a signup.
    """

    text = description.casefold()
    if _MEMBERSHIP_TOKEN not in text:
        return None
    for mtype, words in _MEMBERSHIP_TYPE_CHECKS:
        if all(w in text for w in words):
            return mtype
    return MembershipType.UNKNOWN


def is_new_membership(description: str) -> bool:
    """True when the description carries a ``(NEW)`` marker or the word ``NEW``."""

    return bool(_NEW_MARKER_RE.search(description) or _NEW_WORD_RE.search(description))


def membership_event_for(item: CategorizedTransaction) -> MembershipEvent | None:
    """Membership signup carried by a categorized row, if any."""

    if item.category is not Category.MEMBERSHIP_OR_ADMIN:
        return None
    tx = item.transaction
    mtype = membership_type_for(tx.description)
    if mtype is None:
        return None
    return MembershipEvent(
        patient=tx.patient,
        membership_type=mtype,
        is_new=is_new_membership(tx.description),
        date=tx.date,
        description=tx.description,
    )


# ---- Categorizer ---------------------------------------------------------------


class Categorizer:
    """Apply an ordered rule table to canonical transactions."""

    def __init__(self, rules: Sequence[Rule] = RULES) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def category_for(self, description: str) -> Category:
        return first_match(self._rules, description)

    def categorize(self, transactions: Iterable[CanonicalTransaction]) -> CategorizationResult:
        items: list[CategorizedTransaction] = []
        unmapped: list[UnmappedService] = []

        for tx in transactions:
            category = self.category_for(tx.description)
            item = CategorizedTransaction(transaction=tx, category=category)
            items.append(item)

            if item.category is Category.OTHER:
                unmapped.append(
                    UnmappedService(
                        idx=tx.idx,
                        date=tx.date,
                        patient=tx.patient,
                        description=tx.description,
                        amount=tx.amount,
                    )
                )

        if unmapped:
            _logger.info(
                "%d of %d transactions matched no service rule (%d distinct descriptions)",
                len(unmapped),
                len(items),
                len({u.description for u in unmapped}),
            )
            for u in unmapped:
                _logger.debug("unmapped service row %d: %r", u.idx, u.description)
        return CategorizationResult(items=items, unmapped=unmapped)


def categorize_transactions(
    transactions: Iterable[CanonicalTransaction], *, rules: Sequence[Rule] = RULES
) -> CategorizationResult:
    return Categorizer(rules).categorize(transactions)


def summarize_unmapped(unmapped: Iterable[UnmappedService]) -> list[tuple[str, int]]:
    """Distinct unmapped descriptions with occurrence counts, most frequent first.

    Ties keep first-seen order.
    """

    counts = Counter(u.description for u in unmapped)
    return sorted(counts.items(), key=lambda kv: -kv[1])


__all__ = [
    "Rule",
    "RULES",
    "WEIGHT_LOSS_TOKENS",
    "first_match",
    "membership_type_for",
    "is_new_membership",
    "membership_event_for",
    "Categorizer",
    "categorize_transactions",
    "summarize_unmapped",
]
