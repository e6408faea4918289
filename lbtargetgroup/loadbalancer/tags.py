"""Target group tags: diff, AddTags/RemoveTags, DescribeTags with ignore rules."""

from __future__ import annotations

from typing import Any

from lbtargetgroup.loadbalancer import fields

AWS_TAG_PREFIX = "aws:"


def to_aws_tags(tags: dict[str, str]) -> list[dict[str, str]]:
    """{"k": "v"} -> [{"Key": "k", "Value": "v"}], sorted by key."""
    return [{"Key": k, "Value": v} for k, v in sorted(tags.items())]


def from_aws_tags(tags: list[dict[str, str]]) -> dict[str, str]:
    return {t["Key"]: t.get("Value", "") for t in tags}


def tag_changes(old: dict[str, str] | None, new: dict[str, str] | None) -> tuple[dict[str, str], list[str]]:
    """(tags to add or overwrite, keys to remove) to go from old to new.

    Unresolved tags (a preview placeholder) produce no changes; an unresolved
    value leaves that key alone.
    """
    if fields.is_unknown(new):
        return {}, []
    old = old or {}
    pending = {k for k, v in (new or {}).items() if fields.is_unknown(v)}
    new = fields.strip_unknowns(new or {})
    removed = sorted(k for k in old if k not in new and k not in pending)
    updated = {k: v for k, v in new.items() if old.get(k) != v}
    return updated, removed


def update_tags(client: Any, arn: str, old: dict[str, str] | None, new: dict[str, str] | None) -> None:
    """Apply the tag diff to a target group; removals first."""
    updated, removed = tag_changes(old, new)
    if removed:
        client.remove_tags(ResourceArns=[arn], TagKeys=removed)
    if updated:
        client.add_tags(ResourceArns=[arn], Tags=to_aws_tags(updated))


def ignore_tags(
    tags: dict[str, str],
    ignore_keys: list[str] | None = None,
    ignore_key_prefixes: list[str] | None = None,
) -> dict[str, str]:
    """Drop AWS-reserved tags and tags the provider is configured to ignore."""
    keys = set(ignore_keys or [])
    prefixes = tuple([AWS_TAG_PREFIX, *(ignore_key_prefixes or [])])
    return {k: v for k, v in tags.items() if k not in keys and not k.startswith(prefixes)}


def list_tags(
    client: Any,
    arn: str,
    ignore_keys: list[str] | None = None,
    ignore_key_prefixes: list[str] | None = None,
) -> dict[str, str]:
    """Tags currently on the target group, minus ignored ones."""
    resp = client.describe_tags(ResourceArns=[arn])
    descriptions = resp.get("TagDescriptions") or []
    tags: dict[str, str] = {}
    for description in descriptions:
        if description.get("ResourceArn") in (None, arn):
            tags.update(from_aws_tags(description.get("Tags") or []))
    return ignore_tags(tags, ignore_keys, ignore_key_prefixes)
