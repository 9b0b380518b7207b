"""Spending categories: default keyword rules, custom categories, matching.

Exports
-------
- ``DEFAULT_CATEGORIES``: the nine fixed categories in match order.
- ``categorize(...)``: first-keyword-match classification of a narration.
- ``validate_keywords(...)``: conflict detection for custom category keywords.
- ``create_custom_category`` / ``update_custom_category`` /
  ``delete_custom_category``: validated service operations over a store.
- ``normalize_name(...)`` and ``validate_name(...)``: name checks shared with
  callers that want early feedback before hitting the store.
"""

from __future__ import annotations

import re
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .logging_setup import get_logger
from .models import (
    CustomCategory,
    CustomCategoryInput,
    CustomCategoryUpdate,
    DefaultCategory,
)

if TYPE_CHECKING:
    from .store import Store

FALLBACK_CATEGORY = "other"
CUSTOM_PREFIX = "custom_"
DEFAULT_CUSTOM_COLOR = "#6b7280"

# Order matters: the first category with a matching keyword wins, and within
# a category the first matching keyword wins.
DEFAULT_CATEGORIES: tuple[DefaultCategory, ...] = (
    DefaultCategory(
        "food",
        "Food & Groceries",
        (
            "grocery",
            "supermarket",
            "food",
            "tesco",
            "sainsbury",
            "asda",
            "aldi",
            "lidl",
            "waitrose",
            "morrisons",
        ),
        "#10b981",
    ),
    DefaultCategory(
        "transport",
        "Transportation",
        (
            "gas",
            "fuel",
            "petrol",
            "diesel",
            "shell",
            "bp",
            "esso",
            "train",
            "bus",
            "tube",
            "uber",
            "taxi",
        ),
        "#3b82f6",
    ),
    DefaultCategory(
        "dining",
        "Dining Out",
        (
            "restaurant",
            "cafe",
            "dining",
            "mcdonald",
            "kfc",
            "nando",
            "pizza",
            "starbucks",
            "costa",
            "pret",
        ),
        "#f59e0b",
    ),
    DefaultCategory(
        "shopping",
        "Shopping",
        (
            "shop",
            "store",
            "retail",
            "amazon",
            "ebay",
            "argos",
            "john lewis",
            "next",
            "h&m",
            "m&s",
            "primark",
            "zara",
        ),
        "#ef4444",
    ),
    DefaultCategory(
        "utilities",
        "Utilities",
        (
            "utility",
            "electric",
            "water",
            "internet",
            "british gas",
            "edf",
            "eon",
            "virgin",
            "sky",
            "bt",
        ),
        "#8b5cf6",
    ),
    DefaultCategory(
        "housing",
        "Housing",
        ("rent", "mortgage", "housing", "council tax", "estate agent"),
        "#06b6d4",
    ),
    DefaultCategory(
        "healthcare",
        "Healthcare",
        (
            "medical",
            "hospital",
            "pharmacy",
            "boots",
            "superdrug",
            "nhs",
            "doctor",
            "dentist",
        ),
        "#ec4899",
    ),
    DefaultCategory(
        "entertainment",
        "Entertainment",
        (
            "entertainment",
            "movie",
            "game",
            "cinema",
            "netflix",
            "spotify",
            "apple music",
            "disney",
            "gym",
        ),
        "#84cc16",
    ),
    DefaultCategory(FALLBACK_CATEGORY, "Other", (), "#6b7280"),
)

_DEFAULTS_BY_KEY: dict[str, DefaultCategory] = {c.key: c for c in DEFAULT_CATEGORIES}

_logger = get_logger("finance_sync.categories")


# ---------------------------
# Matching
# ---------------------------


def _lower_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.lower()
    return str(value).lower()


def _first_match(text: str, keywords: Iterable[object]) -> bool:
    for kw in keywords:
        k = _lower_text(kw).strip()
        # An empty keyword would match everything; ignore it.
        if k and k in text:
            return True
    return False


def categorize(
    narration: str | None, custom_categories: Sequence[CustomCategory] | None = None
) -> str:
    """Return the category key for ``narration``.

    Defaults are scanned first in declared order (skipping the fallback),
    then custom categories (returned as ``custom_<id>``), else ``"other"``.
    Never raises.
    """

    text = _lower_text(narration)
    if not text:
        return FALLBACK_CATEGORY

    for cat in DEFAULT_CATEGORIES:
        if cat.key == FALLBACK_CATEGORY:
            continue
        if _first_match(text, cat.keywords):
            return cat.key

    for custom in custom_categories or ():
        keywords = getattr(custom, "keywords", None) or ()
        if _first_match(text, keywords):
            return f"{CUSTOM_PREFIX}{custom.id}"

    return FALLBACK_CATEGORY


def _find_custom(
    key: str, custom_categories: Sequence[CustomCategory] | None
) -> CustomCategory | None:
    if not key.startswith(CUSTOM_PREFIX) or not custom_categories:
        return None
    custom_id = key[len(CUSTOM_PREFIX) :]
    for c in custom_categories:
        if c.id == custom_id:
            return c
    return None


def category_label(key: str, custom_categories: Sequence[CustomCategory] | None = None) -> str:
    """Display name for a category key; unknown keys fall back to the key."""

    custom = _find_custom(key, custom_categories)
    if custom is not None:
        return custom.name
    default = _DEFAULTS_BY_KEY.get(key)
    return default.display_name if default is not None else key


def category_color(key: str, custom_categories: Sequence[CustomCategory] | None = None) -> str:
    custom = _find_custom(key, custom_categories)
    if custom is not None:
        return custom.color
    default = _DEFAULTS_BY_KEY.get(key, _DEFAULTS_BY_KEY[FALLBACK_CATEGORY])
    return default.color


def category_keywords(
    key: str, custom_categories: Sequence[CustomCategory] | None = None
) -> tuple[str, ...]:
    custom = _find_custom(key, custom_categories)
    if custom is not None:
        return tuple(custom.keywords)
    default = _DEFAULTS_BY_KEY.get(key)
    return default.keywords if default is not None else ()


def format_category_keywords(keywords: Sequence[str], max_length: int = 100) -> str:
    """Comma-join keywords with a capitalized first letter, truncating at a word."""

    if not keywords:
        return ""
    result = ", ".join(k[:1].upper() + k[1:] for k in keywords)
    if len(result) > max_length:
        result = result[:max_length].strip()
        last_comma = result.rfind(",")
        if last_comma > 0:
            result = result[:last_comma]
        result += "..."
    return result


# ---------------------------
# Keyword validation
# ---------------------------


@dataclass(frozen=True, slots=True)
class KeywordConflict:
    keyword: str
    category_name: str
    is_default: bool


@dataclass(frozen=True, slots=True)
class KeywordValidation:
    conflicts: tuple[KeywordConflict, ...]

    @property
    def is_valid(self) -> bool:
        return not self.conflicts


def normalize_keywords(keywords: Iterable[str]) -> tuple[str, ...]:
    """Lowercase, trim, drop blanks and duplicates (first occurrence wins)."""

    out: list[str] = []
    for kw in keywords:
        k = kw.strip().lower()
        if k and k not in out:
            out.append(k)
    return tuple(out)


def validate_keywords(
    new_keywords: Iterable[str],
    custom_categories: Sequence[CustomCategory],
    exclude_category_id: str | None = None,
) -> KeywordValidation:
    """Report keywords already claimed by a default or another custom category.

    A keyword claimed by a default category could never match for the custom
    category, since defaults are evaluated first.
    """

    normalized = normalize_keywords(new_keywords)
    conflicts: list[KeywordConflict] = []

    for kw in normalized:
        for cat in DEFAULT_CATEGORIES:
            if kw in cat.keywords:
                conflicts.append(KeywordConflict(kw, cat.display_name, True))
                break

    for custom in custom_categories:
        if exclude_category_id is not None and custom.id == exclude_category_id:
            continue
        for existing in custom.keywords:
            if existing.strip().lower() in normalized:
                conflicts.append(KeywordConflict(existing, custom.name, False))

    return KeywordValidation(tuple(conflicts))


# ---------------------------
# Name normalization/validation
# ---------------------------

_ALLOWED_RE = re.compile(r"^[A-Za-z0-9 &\-/']+$")
_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``."""

    return " ".join(name.strip().split())


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, min_len: int = 1, max_len: int = 64) -> NameValidation:
    """Length 1..64 after trimming; letters, numbers, spaces and ``& - / '``."""

    n = normalize_name(name)
    if len(n) < min_len:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not _ALLOWED_RE.match(n):
        return NameValidation(False, "Only letters, numbers, spaces, and & - / ' are allowed")
    return NameValidation(True, None)


def _check_color(color: str) -> str:
    if not _COLOR_RE.match(color):
        raise ValueError(f"Invalid color {color!r}; expected #rrggbb")
    return color.lower()


# ---------------------------
# Custom category service operations
# ---------------------------


def create_custom_category(
    store: Store,
    customer_id: str,
    data: CustomCategoryInput,
    *,
    now: datetime | None = None,
) -> CustomCategory:
    """Validate and persist a new custom category.

    Raises ``ValueError`` for an invalid name/color, no usable keywords, or
    keywords that conflict with existing categories.
    """

    v = validate_name(data.name)
    if not v.ok:
        raise ValueError(f"Invalid category name: {v.reason}")
    keywords = normalize_keywords(data.keywords)
    if not keywords:
        raise ValueError("A custom category needs at least one keyword")

    existing = store.list_custom_categories(customer_id)
    check = validate_keywords(keywords, existing)
    if not check.is_valid:
        raise ValueError(_conflict_message(check))

    ts = now or datetime.now(UTC)
    category = CustomCategory(
        id=str(uuid.uuid4()),
        customer_id=customer_id,
        name=normalize_name(data.name),
        keywords=keywords,
        color=_check_color(data.color) if data.color else DEFAULT_CUSTOM_COLOR,
        created_at=ts,
        updated_at=ts,
    )
    store.insert_custom_category(category)
    _logger.info("created custom category %s for customer %s", category.id, customer_id)
    return category


def update_custom_category(
    store: Store,
    customer_id: str,
    category_id: str,
    update: CustomCategoryUpdate,
    *,
    now: datetime | None = None,
) -> CustomCategory | None:
    """Apply a partial update. Returns the updated category, or ``None`` if absent."""

    if update.is_empty():
        return next(
            (c for c in store.list_custom_categories(customer_id) if c.id == category_id), None
        )

    name = update.name
    if name is not None:
        v = validate_name(name)
        if not v.ok:
            raise ValueError(f"Invalid category name: {v.reason}")
        name = normalize_name(name)

    keywords = update.keywords
    if keywords is not None:
        keywords = normalize_keywords(keywords)
        if not keywords:
            raise ValueError("A custom category needs at least one keyword")
        check = validate_keywords(
            keywords, store.list_custom_categories(customer_id), exclude_category_id=category_id
        )
        if not check.is_valid:
            raise ValueError(_conflict_message(check))

    color = _check_color(update.color) if update.color is not None else None

    return store.update_custom_category(
        customer_id,
        category_id,
        CustomCategoryUpdate(name=name, keywords=keywords, color=color),
        now=now or datetime.now(UTC),
    )


def delete_custom_category(store: Store, customer_id: str, category_id: str) -> bool:
    return store.delete_custom_category(customer_id, category_id)


def _conflict_message(check: KeywordValidation) -> str:
    parts = [
        f"'{c.keyword}' ({'default' if c.is_default else 'custom'}: {c.category_name})"
        for c in check.conflicts
    ]
    return "Keywords already used by other categories: " + ", ".join(parts)


__all__ = [
    "CUSTOM_PREFIX",
    "DEFAULT_CATEGORIES",
    "FALLBACK_CATEGORY",
    "KeywordConflict",
    "KeywordValidation",
    "NameValidation",
    "categorize",
    "category_color",
    "category_keywords",
    "category_label",
    "create_custom_category",
    "delete_custom_category",
    "format_category_keywords",
    "normalize_keywords",
    "normalize_name",
    "update_custom_category",
    "validate_keywords",
    "validate_name",
]
