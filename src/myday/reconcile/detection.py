"""
Detection strategies: "is this block the journal entry for (task, day)?"

Different insertion paths leave different traces, so detection is an ordered
tuple of named predicates tried in priority order. Each predicate is pure and
works on a single Block snapshot.

    marker     tagged with our task-id marker (day-key marker absent or equal)
    mirror     untagged block whose _repr mirrors the task
    reference  untagged block that links to the task inline
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from myday.host.block import LINK_FRAGMENT, Block
from myday.reconcile.markers import Canonical, marked_day_key, marked_task_id
from myday.shared.ids import coerce_block_id, parse_reference_target
from myday.shared.types import BlockId, RefType

Predicate = Callable[[Block, BlockId, str, Canonical], bool]


@dataclass(frozen=True)
class DetectionStrategy:
    name: str
    matches: Predicate


def _canonical_task_id(value: object, canonical: Canonical) -> BlockId | None:
    block_id = coerce_block_id(value)
    return canonical(block_id) if block_id is not None else None


def is_mirror_of(block: Block, task_id: BlockId, canonical: Canonical) -> bool:
    """True when the block is a structural mirror of the task (or the task itself)."""
    mirrored = block.mirrored_id
    if mirrored is not None and canonical(mirrored) == task_id:
        return True
    return canonical(block.id) == task_id


def has_reference_fragment(block: Block, task_id: BlockId, canonical: Canonical) -> bool:
    for fragment in block.content:
        if fragment.kind != LINK_FRAGMENT:
            continue
        target = _canonical_task_id(parse_reference_target(fragment.target), canonical)
        if target is not None and target == task_id:
            return True
    return False


def contains_task_reference(block: Block, task_id: BlockId, canonical: Canonical) -> bool:
    """Link fragment, inline ref, or literal ``((id))`` text pointing at the task."""
    if has_reference_fragment(block, task_id, canonical):
        return True

    for ref in block.refs:
        if ref.type == RefType.INLINE and _canonical_task_id(ref.to, canonical) == task_id:
            return True

    pattern = f"(({task_id}))"
    if isinstance(block.text, str) and pattern in block.text:
        return True
    return any(isinstance(f.text, str) and pattern in f.text for f in block.content)


def match_marker(block: Block, task_id: BlockId, day_key: str, canonical: Canonical) -> bool:
    marked = _canonical_task_id(marked_task_id(block), canonical)
    if marked is None or marked != task_id:
        return False
    stamped = marked_day_key(block)
    return stamped is None or stamped == day_key


def match_mirror(block: Block, task_id: BlockId, day_key: str, canonical: Canonical) -> bool:
    if marked_task_id(block) is not None:
        return False
    mirrored = block.mirrored_id
    return mirrored is not None and canonical(mirrored) == task_id


def match_reference(block: Block, task_id: BlockId, day_key: str, canonical: Canonical) -> bool:
    if marked_task_id(block) is not None:
        return False
    return contains_task_reference(block, task_id, canonical)


MARKER = DetectionStrategy("marker", match_marker)
MIRROR = DetectionStrategy("mirror", match_mirror)
REFERENCE = DetectionStrategy("reference", match_reference)

DEFAULT_DETECTION_STRATEGIES: tuple[DetectionStrategy, ...] = (MARKER, MIRROR, REFERENCE)


def detect_entry(
    block: Block,
    task_id: BlockId,
    day_key: str,
    canonical: Canonical,
    strategies: Sequence[DetectionStrategy] = DEFAULT_DETECTION_STRATEGIES,
) -> str | None:
    """Name of the first strategy that matches, or None."""
    for strategy in strategies:
        if strategy.matches(block, task_id, day_key, canonical):
            return strategy.name
    return None
