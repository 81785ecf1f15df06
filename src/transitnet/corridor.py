"""Collapse direction and service-variant relations into one corridor."""

import re
from typing import Dict, Iterable, List

from .models import Member, Relation

_VARIANT_SUFFIX = re.compile(
    r"[\s\-:]*\(?\s*\b(?:semi[\s\-]?fast|fast|slow|up|down|local|express|stopping)\s*\)?\s*$",
    re.IGNORECASE,
)


def normalize_corridor_key(raw_name: str) -> str:
    """
    Reduce a relation name to its corridor grouping key.

    "Churchgate Fast", "Churchgate (Slow)" and "Churchgate Down" all become
    "churchgate". Suffixes are stripped repeatedly, so "X Up Fast" works too.
    """
    name = (raw_name or "").strip()
    while True:
        stripped = _VARIANT_SUFFIX.sub("", name).strip()
        if stripped == name or not stripped:
            break
        name = stripped
    return name.lower()


def merge_corridor_relations(relations: Iterable[Relation]) -> List[Relation]:
    """
    Merge relations sharing a corridor key into one relation each.

    The merged relation keeps the id and tags of the first relation in the
    group; way members are concatenated in order with duplicates removed.
    Non-way members of later relations are dropped.
    """
    groups: Dict[str, Relation] = {}
    seen_ways: Dict[str, set] = {}

    for relation in relations:
        key = normalize_corridor_key(relation.name)
        if key not in groups:
            groups[key] = Relation(id=relation.id, tags=dict(relation.tags), members=[])
            seen_ways[key] = set()
            keep_other_members = True
        else:
            keep_other_members = False

        merged = groups[key]
        for member in relation.members:
            if member.type == "way":
                if member.ref in seen_ways[key]:
                    continue
                seen_ways[key].add(member.ref)
                merged.members.append(Member(type=member.type, ref=member.ref, role=member.role))
            elif keep_other_members:
                merged.members.append(member)

    return list(groups.values())
