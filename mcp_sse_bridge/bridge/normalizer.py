"""Normalization of remote listing replies into the canonical wrapped shape.

Remote servers do not agree on how a listing reply looks: some send the
items bare, most wrap them under the category key (``{"tools": [...]}``).
Every reply is first classified into one of the :data:`ResponseShape`
variants, then mapped to ``{<canonical key>: [...]}``.

Unrecognized shapes are never an error. They are logged with a description
of what was observed and reported as an empty collection, so one
misbehaving listing cannot take the bridge down.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Dict, List, Union

from pydantic import BaseModel

from mcp_sse_bridge.bridge.categories import Category

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BareSequence:
    """The remote sent the items themselves."""

    items: List[Any]


@dataclass(frozen=True)
class WrappedCollection:
    """The remote sent a mapping with the canonical key bound to a sequence."""

    key: str
    items: List[Any]
    payload: Mapping


@dataclass(frozen=True)
class Unrecognized:
    """Anything else; ``observed`` describes what actually arrived."""

    observed: str


ResponseShape = Union[BareSequence, WrappedCollection, Unrecognized]


def _is_item_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def describe_shape(raw: Any) -> str:
    """Compact description of a reply's shape for diagnostics."""
    if raw is None:
        return "null"
    if isinstance(raw, Mapping):
        keys = ", ".join(sorted(str(k) for k in raw.keys()))
        return f"object with keys [{keys}]"
    if _is_item_sequence(raw):
        return f"sequence of {len(raw)} items"
    return type(raw).__name__


def _listing_key(category: Category) -> str:
    key = category.canonical_key
    if key is None:
        raise ValueError(f"Category '{category.value}' is not a listing category.")
    return key


def classify(category: Category, raw: Any) -> ResponseShape:
    """Decide which :data:`ResponseShape` variant *raw* is for *category*."""
    key = _listing_key(category)

    if isinstance(raw, BaseModel):
        raw = raw.model_dump(by_alias=True, exclude_none=True)

    if _is_item_sequence(raw):
        return BareSequence(items=list(raw))

    if isinstance(raw, Mapping):
        items = raw.get(key)
        if _is_item_sequence(items):
            return WrappedCollection(key=key, items=list(items), payload=raw)
        if key not in raw:
            return Unrecognized(observed=f"{describe_shape(raw)} (missing '{key}')")
        return Unrecognized(
            observed=f"{describe_shape(raw)} ('{key}' is {describe_shape(items)})"
        )

    return Unrecognized(observed=describe_shape(raw))


def empty_collection(category: Category) -> Dict[str, List[Any]]:
    """The canonical reply for a listing with nothing to report."""
    return {_listing_key(category): []}


def normalize(category: Category, raw: Any) -> Dict[str, Any]:
    """Return *raw* in the canonical ``{key: [...]}`` shape for *category*.

    An already-canonical mapping is returned unchanged, including any
    extra fields such as ``nextCursor``.
    """
    shape = classify(category, raw)

    if isinstance(shape, BareSequence):
        logger.debug(
            "Remote returned a bare sequence of %d %s; wrapping it.",
            len(shape.items),
            category.canonical_key,
        )
        return {_listing_key(category): shape.items}

    if isinstance(shape, WrappedCollection):
        logger.debug(
            "Remote returned wrapped format with %d %s.",
            len(shape.items),
            shape.key,
        )
        if isinstance(shape.payload, dict):
            return shape.payload
        return dict(shape.payload)

    logger.warning(
        "Unexpected reply shape for %s: %s. Reporting an empty collection.",
        category.value,
        shape.observed,
    )
    return empty_collection(category)
