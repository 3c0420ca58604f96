"""
Derivation of slugs, keys and physical identifiers from user input.

Every table and column name the engine emits comes out of this module.
Derivation is an allow-list transformation (lowercase ASCII letters,
digits, underscore; hyphen only inside project slugs) followed by
a strict check of the result, so raw user strings never reach DDL.
Data values are always bound as parameters, never formatted into SQL.
"""

from __future__ import annotations

import re

from metaengine.core.errors import ValidationError

# Fixed prefix of every record table: data_<normalized_slug>
RECORD_TABLE_PREFIX = "data_"

# Postgres truncates identifiers at 63 bytes; SQLite has no limit.
MAX_IDENTIFIER_LENGTH = 63

# Columns every record table carries independently of the attribute list.
RESERVED_COLUMNS = frozenset({"id", "created_at", "state_key"})

_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")
_SLUG_RE = re.compile(r"^[a-z_][a-z0-9_-]*$")
_WHITESPACE_RE = re.compile(r"\s")
_NON_WORD_RE = re.compile(r"[^\w]", re.ASCII)
_NON_SLUG_RE = re.compile(r"[^\w-]", re.ASCII)


def _clean(value: str, what: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(f"{what} is required")
    return value.strip().lower()


def _checked(result: str, source: str, what: str, pattern: re.Pattern[str]) -> str:
    if not result:
        raise ValidationError(f"{what} {source!r} contains no usable characters")
    if not pattern.match(result):
        raise ValidationError(
            f"{what} {source!r} must start with a letter or underscore (got {result!r})"
        )
    if len(result) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            f"{what} {source!r} is longer than {MAX_IDENTIFIER_LENGTH} characters"
        )
    return result


def project_slug(name: str) -> str:
    """Project namespace: lowercase, spaces → hyphens."""
    cleaned = _clean(name, "Project name")
    slug = _NON_SLUG_RE.sub("", _WHITESPACE_RE.sub("-", cleaned))
    return _checked(slug, name, "Project name", _SLUG_RE)


def entity_slug(name: str) -> str:
    """
    Entity namespace and storage key: lowercase, spaces and hyphens →
    underscores.

    The slug is the table name minus its prefix, so two entities with
    distinct slugs never share a record table ("Foo-Bar" and "Foo Bar"
    both become foo_bar and collide on the slug check instead).
    """
    cleaned = _clean(name, "Entity name")
    slug = _NON_WORD_RE.sub("", _WHITESPACE_RE.sub("_", cleaned.replace("-", "_")))
    slug = _checked(slug, name, "Entity name", _IDENTIFIER_RE)
    # The table name must fit the bound as well, not only the slug.
    record_table_name(slug)
    return slug


def attribute_key(label: str) -> str:
    """Column key: lowercase, spaces → underscores, non-word chars stripped."""
    cleaned = _clean(label, "Attribute label")
    key = _NON_WORD_RE.sub("", _WHITESPACE_RE.sub("_", cleaned))
    key = _checked(key, label, "Attribute label", _IDENTIFIER_RE)
    if key in RESERVED_COLUMNS:
        raise ValidationError(f"Attribute key {key!r} is reserved")
    return key


def state_key(state_name: str) -> str:
    """Workflow state key, derived like an attribute key."""
    cleaned = _clean(state_name, "State name")
    key = _NON_WORD_RE.sub("", _WHITESPACE_RE.sub("_", cleaned))
    return _checked(key, state_name, "State name", _IDENTIFIER_RE)


def record_table_name(slug: str) -> str:
    """
    Physical record table of the entity with this slug.

    Derived from the slug alone so no name registry is needed:
        "purchase-order" → "data_purchase_order"
    """
    name = RECORD_TABLE_PREFIX + slug.replace("-", "_")
    if not _IDENTIFIER_RE.match(name) or len(name) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(f"Slug {slug!r} does not map to a valid table name")
    return name
