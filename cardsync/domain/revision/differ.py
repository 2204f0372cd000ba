"""Comparison of a card list with a revised version of it.

Computing the differences and applying reviewer decisions are separate
steps: :func:`diff_cards` produces entries, a reviewer may flip the side of
any entry, and :func:`merge_revision` rebuilds the card list from them.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, List, Mapping, Optional

from cardsync.domain.cards.models import Card


class DiffKind(Enum):
    UNCHANGED = "unchanged"
    MODIFIED = "modified"
    ADDED = "added"
    DELETED = "deleted"


class Side(Enum):
    OLD = "old"
    NEW = "new"


@dataclass
class DiffEntry:
    kind: DiffKind
    old: Optional[Card] = None
    new: Optional[Card] = None
    resolution: Side = Side.NEW


def _same_content(old: Card, new: Card) -> bool:
    return old.question == new.question and old.answer == new.answer and old.kind == new.kind


def diff_cards(old_cards: List[Card], new_cards: List[Card]) -> List[DiffEntry]:
    """
    Pair old and new cards by remote ID, then by identical question.

    Returns:
        List[DiffEntry]: Entries in old-list order, followed by added cards in new-list order
    """
    pairs: Dict[int, int] = {}
    taken = set()

    new_by_id = {}
    for j, card in enumerate(new_cards):
        if card.remote_id is not None and card.remote_id not in new_by_id:
            new_by_id[card.remote_id] = j

    for i, card in enumerate(old_cards):
        j = new_by_id.get(card.remote_id) if card.remote_id is not None else None
        if j is not None and j not in taken:
            pairs[i] = j
            taken.add(j)

    for i, card in enumerate(old_cards):
        if i in pairs:
            continue
        j = next((j for j, new in enumerate(new_cards) if j not in taken and new.question == card.question), None)
        if j is not None:
            pairs[i] = j
            taken.add(j)

    entries: List[DiffEntry] = []
    for i, old in enumerate(old_cards):
        if i not in pairs:
            entries.append(DiffEntry(DiffKind.DELETED, old=old))
            continue
        new = new_cards[pairs[i]]
        kind = DiffKind.UNCHANGED if _same_content(old, new) else DiffKind.MODIFIED
        entries.append(DiffEntry(kind, old=old, new=new))

    entries.extend(DiffEntry(DiffKind.ADDED, new=new) for j, new in enumerate(new_cards) if j not in taken)
    return entries


def _side(entries: List[DiffEntry], index: int, resolutions: Optional[Mapping[int, Side]]) -> Side:
    if resolutions and index in resolutions:
        return resolutions[index]
    return entries[index].resolution


def merge_revision(entries: List[DiffEntry], resolutions: Optional[Mapping[int, Side]] = None) -> List[Card]:
    """
    Build the final card list from diff entries.

    Args:
        entries (List[DiffEntry]): Output of :func:`diff_cards`
        resolutions (Optional[Mapping[int, Side]]): Entry index to chosen side; entries
            without a value use their own ``resolution``

    Returns:
        List[Card]: Merged cards. Paired cards keep the old remote ID when it has one.
    """
    merged: List[Card] = []

    for index, entry in enumerate(entries):
        side = _side(entries, index, resolutions)

        if entry.kind == DiffKind.ADDED:
            if side == Side.NEW:
                merged.append(entry.new.with_remote_id(None))
        elif entry.kind == DiffKind.DELETED:
            if side == Side.OLD:
                merged.append(entry.old)
        elif entry.kind == DiffKind.MODIFIED and side == Side.OLD:
            merged.append(entry.old)
        else:
            remote_id = entry.old.remote_id if entry.old.remote_id is not None else entry.new.remote_id
            merged.append(replace(entry.new, remote_id=remote_id))

    return merged


def removed_remote_ids(entries: List[DiffEntry], resolutions: Optional[Mapping[int, Side]] = None) -> List[int]:
    """Remote IDs of old cards whose deletion was accepted."""
    return [
        entry.old.remote_id
        for index, entry in enumerate(entries)
        if entry.kind == DiffKind.DELETED
        and entry.old.remote_id is not None
        and _side(entries, index, resolutions) == Side.NEW
    ]
