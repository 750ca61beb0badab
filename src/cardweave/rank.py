"""Fractional rank tokens for ordering sibling cards.

A rank is ``"<bucket>|<body>"``: one decimal digit, a pipe, and one or more
lowercase ASCII letters. Ranks compare with plain ordinal string comparison, so
the body behaves like a base-26 fraction (``a`` = 0 ... ``z`` = 25). Inserting
a card only computes a new token between its two neighbours; no other sibling
is rewritten.

Generated bodies never end in ``a``. That keeps a gap below every generated
token, so only hand-written or legacy ranks (``"0|a"``, ``"0|ba"``) can leave
two neighbours with nothing in between. ``between()`` raises
``RankExhaustedError`` in that case and callers fall back to
``rebalance_ranks()``.

The module also owns the small list-reorder primitives that keep ordered name
lists (card type visibility groups) consistent.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Sequence
from typing import Any, TypeVar

from cardweave.errors import InvalidRankError, RankExhaustedError

logger = logging.getLogger(__name__)

ALPHABET = "abcdefghijklmnopqrstuvwxyz"
DEFAULT_BUCKET = "0"
SEPARATOR = "|"

# Token handed out when a sibling group is empty.
FIRST_RANK = f"{DEFAULT_BUCKET}{SEPARATOR}{ALPHABET[len(ALPHABET) // 2]}"
# Placeholder used by older data for cards that were never ranked.
EMPTY_RANK = f"1{SEPARATOR}{ALPHABET[0]}"

_RANK_PATTERN = re.compile(r"^[0-9]\|[a-z]+$")
_LOW = ord(ALPHABET[0])
_HIGH = ord(ALPHABET[-1])

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Validation and comparison
# ---------------------------------------------------------------------------


def is_valid_rank(rank: object) -> bool:
    """True when *rank* is a well-formed rank token."""
    return isinstance(rank, str) and _RANK_PATTERN.match(rank) is not None


def validate_rank(rank: object) -> str:
    """Return *rank* unchanged, or raise ``InvalidRankError`` if malformed."""
    if not is_valid_rank(rank):
        msg = f"Invalid rank {rank!r}: expected '<digit>|<lowercase letters>', e.g. '0|n'"
        raise InvalidRankError(msg)
    return rank  # type: ignore[return-value]


def _split(rank: str) -> tuple[str, str]:
    validate_rank(rank)
    bucket, body = rank.split(SEPARATOR, 1)
    return bucket, body


def compare(a: str, b: str) -> int:
    """Three-way comparison of two rank tokens: -1, 0, or 1."""
    validate_rank(a)
    validate_rank(b)
    return (a > b) - (a < b)


# ---------------------------------------------------------------------------
# Token synthesis
# ---------------------------------------------------------------------------


def _after(body: str) -> str:
    """A body strictly greater than *body* (which may be empty)."""
    if not body:
        return ALPHABET[len(ALPHABET) // 2]
    head = ord(body[0])
    if head < _HIGH:
        return chr((head + _HIGH + 2) // 2)
    return body[0] + _after(body[1:])


def _before(body: str) -> str | None:
    """A non-empty body strictly less than *body*, or None when none exists."""
    head = ord(body[0])
    if head > _LOW + 1:
        return chr((_LOW + head) // 2)
    if head == _LOW + 1:
        return ALPHABET[0] + _after("")
    rest = body[1:]
    if not rest:
        return None
    tail = _before(rest)
    return None if tail is None else body[0] + tail


def _between(low: str, high: str) -> str | None:
    """A body strictly between *low* and *high*; *low* may be empty."""
    n = 0
    while n < len(low) and low[n] == high[n]:
        n += 1
    if n == len(low):
        # low is a prefix of high
        tail = _before(high[n:])
        return None if tail is None else high[:n] + tail
    lo, hi = ord(low[n]), ord(high[n])
    if hi - lo > 1:
        return low[:n] + chr((lo + hi + 1) // 2)
    return low[: n + 1] + _after(low[n + 1 :])


def between(a: str | None, b: str | None) -> str:
    """Synthesize a rank strictly between *a* and *b*.

    ``a=None`` asks for a rank before *b*; ``b=None`` for a rank after *a*.
    With both None the fixed ``FIRST_RANK`` is returned. The result uses *a*'s
    bucket (or *b*'s when *a* is None).

    Raises:
        InvalidRankError: If either token is malformed or ``a >= b``.
        RankExhaustedError: If no token fits between the two.
    """
    if a is None and b is None:
        return FIRST_RANK
    if a is not None and b is not None and compare(a, b) >= 0:
        msg = f"Rank {a!r} must sort before {b!r}"
        raise InvalidRankError(msg)

    if b is None:
        bucket, body = _split(a)  # type: ignore[arg-type]
        return f"{bucket}{SEPARATOR}{_after(body)}"

    high_bucket, high_body = _split(b)
    if a is None:
        bucket, result = high_bucket, _between("", high_body)
    else:
        bucket, low_body = _split(a)
        result = _after(low_body) if bucket != high_bucket else _between(low_body, high_body)

    if result is None:
        raise RankExhaustedError(a, b)
    return f"{bucket}{SEPARATOR}{result}"


def rank_after(rank: str) -> str:
    """A rank strictly after *rank*."""
    return between(rank, None)


def rank_before(rank: str) -> str:
    """A rank strictly before *rank*; may raise ``RankExhaustedError``."""
    return between(None, rank)


def _encode(num: int, width: int) -> str:
    digits: list[str] = []
    for _ in range(width):
        num, rem = divmod(num, len(ALPHABET))
        digits.append(ALPHABET[rem])
    return "".join(reversed(digits))


def rebalance_ranks(count: int, bucket: str = DEFAULT_BUCKET) -> list[str]:
    """Return *count* evenly spaced ascending ranks.

    The tokens leave room before the first and after the last entry, so the
    next insertion anywhere in the group succeeds without another rebalance.
    """
    if count <= 0:
        return []
    width = 1
    while len(ALPHABET) ** width < 2 * (count + 1):
        width += 1
    step = len(ALPHABET) ** width // (count + 1)
    ranks = [f"{bucket}{SEPARATOR}{_encode(i * step, width).rstrip(ALPHABET[0])}" for i in range(1, count + 1)]
    logger.debug("Rebalanced %d ranks (width=%d)", count, width)
    return ranks


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------


def sort_key(rank: str | None, key: str) -> tuple[int, str, str]:
    """Sort key for a sibling: ranked cards first, then unranked; ties by key."""
    if not rank:
        return (1, "", key)
    return (0, rank, key)


def sort_siblings(
    nodes: Iterable[T],
    *,
    rank_of: Callable[[T], str | None] | None = None,
    key_of: Callable[[T], str] | None = None,
) -> list[T]:
    """Sort one sibling group by ascending rank.

    Defaults read ``.rank`` and ``.key`` attributes. Cards with a missing rank
    sort after every ranked sibling, ordered by key, so the result is
    deterministic and idempotent.
    """
    get_rank: Callable[[Any], str | None] = rank_of or (lambda n: n.rank)
    get_key: Callable[[Any], str] = key_of or (lambda n: n.key)
    return sorted(nodes, key=lambda n: sort_key(get_rank(n), get_key(n)))


# ---------------------------------------------------------------------------
# Ordered list primitives
# ---------------------------------------------------------------------------


def _check_index(index: int) -> None:
    if index < 0:
        msg = f"Index must be zero or greater, got {index}"
        raise ValueError(msg)


def insert_item(items: Sequence[T], item: T, index: int | None = None) -> tuple[T, ...]:
    """Return *items* with *item* inserted at *index* (default: appended).

    An index past the end appends.
    """
    result = list(items)
    if index is None:
        result.append(item)
    else:
        _check_index(index)
        result.insert(index, item)
    return tuple(result)


def remove_item(items: Sequence[T], item: T) -> tuple[T, ...]:
    """Return *items* without any occurrence of *item*."""
    return tuple(i for i in items if i != item)


def move_item(items: Sequence[T], item: T, index: int) -> tuple[T, ...]:
    """Return *items* with *item* relocated so it ends up at *index*.

    Raises:
        ValueError: If *item* is not in *items* or *index* is negative.
    """
    if item not in items:
        msg = f"{item!r} is not in the list"
        raise ValueError(msg)
    return insert_item(remove_item(items, item), item, index)
