"""TypedDicts for the nested card form read and written by CardTree."""

from __future__ import annotations

from typing import TypedDict


class _CardNodeRequired(TypedDict):
    key: str


class CardNodeDict(_CardNodeRequired, total=False):
    """One card in ``CardTree.from_dicts()`` / ``to_dicts()`` form.

    Only ``key`` is required on input. Any other key is carried through as an
    annotation and written back unchanged.
    """

    title: str
    rank: str | None
    cardType: str
    workflowState: str | None
    children: list[CardNodeDict]
