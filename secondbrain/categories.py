"""
Entry categories, per-category status vocabularies and typed content records.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum as PyEnum
from typing import Any, Iterator, Optional

from secondbrain.errors import ValidationIssue


class Category(str, PyEnum):
    people = "People"
    project = "Project"
    idea = "Idea"
    admin = "Admin"
    reading = "Reading"


CATEGORY_ALIASES = {
    "people": Category.people,
    "person": Category.people,
    "project": Category.project,
    "projects": Category.project,
    "idea": Category.idea,
    "ideas": Category.idea,
    "admin": Category.admin,
    "admin-task": Category.admin,
    "task": Category.admin,
    "tasks": Category.admin,
    "reading": Category.reading,
}

STATUS_OPTIONS: dict[Category, tuple[str, ...]] = {
    Category.people: ("New", "Active", "Dormant"),
    Category.project: ("Not Started", "Active", "Waiting", "Complete"),
    Category.idea: ("Spark", "Developing", "Actionable"),
    Category.admin: ("Todo", "Done"),
    Category.reading: ("Unread", "Reading", "Read"),
}

DEFAULT_STATUS: dict[Category, str] = {
    category: options[0] for category, options in STATUS_OPTIONS.items()
}

PRIORITY_OPTIONS = ("High", "Medium", "Low")

INBOX_LOG_STATUS = ("Processed", "Needs Review", "Fixed", "Ignored")
INBOX_DEFAULT_STATUS = "Processed"


def parse_category(value, field_name: str = "category") -> Category:
    if isinstance(value, Category):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(
            f"{field_name} must be a non-empty string",
            field=field_name,
            error_type="required",
        )
    category = CATEGORY_ALIASES.get(value.strip().lower())
    if category is None:
        allowed = ", ".join(c.value for c in Category)
        raise ValidationIssue(
            f"{field_name} must be one of: {allowed}",
            field=field_name,
            error_type="invalid_value",
        )
    return category


def status_options(category: Category) -> tuple[str, ...]:
    return STATUS_OPTIONS.get(category, ())


def is_known_status(category: Category, status: str) -> bool:
    wanted = status.strip().lower()
    return any(option.lower() == wanted for option in status_options(category))


# =============================================================================
# Typed content records
# =============================================================================

def _key(name: str, kind: type = str) -> Any:
    return field(default=None, metadata={"key": name, "kind": kind})


@dataclass
class EntryContent:
    """Base content record: known attributes plus an open extension map.

    Stored content stays a flat JSON object keyed by the camelCase names the
    capture flows write. Only keys that were actually supplied are emitted
    again, so parsing and re-serializing an object never invents keys.
    """

    extra: dict[str, Any] = field(default_factory=dict)
    _present: set[str] = field(default_factory=set, repr=False, compare=False)

    @classmethod
    def _known(cls) -> Iterator:
        for item in fields(cls):
            if "key" in item.metadata:
                yield item

    @classmethod
    def from_dict(cls, payload: Optional[dict], *, strict: bool = True) -> "EntryContent":
        """Parse a flat content object.

        With strict=False a known key holding the wrong type is kept in
        `extra` instead of being rejected.
        """
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationIssue(
                "content must be an object",
                field="content",
                error_type="invalid_type",
            )
        record = cls()
        by_key = {item.metadata["key"]: item for item in cls._known()}
        for key, value in payload.items():
            if not isinstance(key, str):
                raise ValidationIssue(
                    "content keys must be strings",
                    field="content",
                    error_type="invalid_type",
                )
            spec = by_key.get(key)
            if spec is None:
                record.extra[key] = value
                continue
            kind = spec.metadata["kind"]
            if value is not None and not isinstance(value, kind):
                if not strict:
                    record.extra[key] = value
                    continue
                raise ValidationIssue(
                    f"content.{key} must be {kind.__name__} or null",
                    field=f"content.{key}",
                    error_type="invalid_type",
                )
            setattr(record, spec.name, value)
            record._present.add(key)
        return record

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for item in self._known():
            key = item.metadata["key"]
            if key in self._present:
                payload[key] = getattr(self, item.name)
        payload.update(self.extra)
        return payload


@dataclass
class PersonContent(EntryContent):
    company: Optional[str] = _key("company")
    role: Optional[str] = _key("role")
    context: Optional[str] = _key("context")
    notes: Optional[str] = _key("notes")
    last_contact: Optional[str] = _key("lastContact")
    next_follow_up: Optional[str] = _key("nextFollowUp")


@dataclass
class ProjectContent(EntryContent):
    next_action: Optional[str] = _key("nextAction")
    area: Optional[str] = _key("area")
    notes: Optional[str] = _key("notes")


@dataclass
class IdeaContent(EntryContent):
    raw_insight: Optional[str] = _key("rawInsight")
    one_liner: Optional[str] = _key("oneLiner")
    source: Optional[str] = _key("source")
    idea_category: Optional[str] = _key("ideaCategory")
    notes: Optional[str] = _key("notes")


@dataclass
class AdminContent(EntryContent):
    admin_category: Optional[str] = _key("adminCategory")
    notes: Optional[str] = _key("notes")


@dataclass
class ReadingContent(EntryContent):
    one_liner: Optional[str] = _key("oneLiner")
    raw_insight: Optional[str] = _key("rawInsight")
    source: Optional[str] = _key("source")
    idea_category: Optional[str] = _key("ideaCategory")
    structured_summary: Optional[dict] = _key("structuredSummary", dict)
    notes: Optional[str] = _key("notes")


CONTENT_TYPES: dict[Category, type[EntryContent]] = {
    Category.people: PersonContent,
    Category.project: ProjectContent,
    Category.idea: IdeaContent,
    Category.admin: AdminContent,
    Category.reading: ReadingContent,
}


def parse_content(category: Category, payload: Optional[dict], *, strict: bool = True) -> EntryContent:
    return CONTENT_TYPES[category].from_dict(payload, strict=strict)


def iter_text_leaves(value: Any) -> Iterator[str]:
    """Yield every non-blank string leaf of a nested JSON value."""
    if isinstance(value, str):
        if value.strip():
            yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_text_leaves(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_text_leaves(item)


def build_embedding_text(title: str, content: Optional[dict]) -> str:
    parts = [title or ""]
    parts.extend(iter_text_leaves(content or {}))
    return " ".join(parts).strip()
