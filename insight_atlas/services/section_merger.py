"""Merge generated sections into canonical document order.

Sections may arrive in any order (streamed content, gap-fill additions).
Merging keeps the document readable: known types follow a fixed
precedence and unknown types sort after all of them.
"""

from __future__ import annotations

from typing import Iterable

from insight_atlas.models import Section, SectionType

SECTION_TYPE_ORDER: list[str] = [t.value for t in SectionType]

_PRECEDENCE = {name: rank for rank, name in enumerate(SECTION_TYPE_ORDER)}
_UNKNOWN_PRECEDENCE = len(SECTION_TYPE_ORDER)


def type_precedence(section_type: str) -> int:
    """Rank of a section type; unknown types rank after every known type."""
    return _PRECEDENCE.get(section_type, _UNKNOWN_PRECEDENCE)


def insert_position(section_type: str, sections: list[Section]) -> int:
    """Index before the first section whose type ranks strictly later."""
    rank = type_precedence(section_type)
    for index, existing in enumerate(sections):
        if type_precedence(existing.type) > rank:
            return index
    return len(sections)


def merge_sections(original: list[Section], additions: Iterable[Section]) -> list[Section]:
    """Insert or replace `additions` into `original`.

    An addition sharing `(type, title)` with an existing section replaces
    it in place. Otherwise it is inserted before the first section of a
    strictly later type, or appended.

    Returns:
        A new list; `original` is not modified.
    """
    merged = list(original)

    for addition in additions:
        existing_index = next(
            (i for i, s in enumerate(merged) if s.identity == addition.identity),
            None,
        )
        if existing_index is not None:
            merged[existing_index] = addition
        else:
            merged.insert(insert_position(addition.type, merged), addition)

    return merged


def count_words(sections: Iterable[Section]) -> int:
    """Words across section content plus any action-step metadata."""
    total = 0
    for section in sections:
        total += len(section.content.split())
        total += sum(len(step.split()) for step in section.action_steps())
    return total


def assign_section_ids(existing: list[Section], additions: Iterable[Section]) -> list[Section]:
    """Copies of `additions` with ids that survive later merges.

    An addition that will replace an existing `(type, title)` takes over
    that section's id. Any other addition keeps its own id when unused,
    else gets the next free `section-N`.
    """
    by_identity = {s.identity: s.id for s in existing if s.id}
    used = {s.id for s in existing if s.id}
    number = 0
    result = []
    for addition in additions:
        section_id = by_identity.get(addition.identity)
        if section_id is None:
            section_id = addition.id if addition.id and addition.id not in used else None
            while section_id is None:
                number += 1
                if f"section-{number}" not in used:
                    section_id = f"section-{number}"
            used.add(section_id)
            by_identity[addition.identity] = section_id
        result.append(addition.model_copy(update={"id": section_id}))
    return result
