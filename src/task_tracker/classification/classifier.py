"""Keyword-based task classification."""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Category(str, Enum):
    """Task category derived from its text."""

    SCHEDULING = "scheduling"
    FINANCE = "finance"
    TECHNICAL = "technical"
    SAFETY = "safety"
    GENERAL = "general"


class Priority(str, Enum):
    """Task priority derived from its text."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Evaluated in order, first match wins
CATEGORY_RULES: list[tuple[Category, re.Pattern[str]]] = [
    (Category.SCHEDULING, re.compile(r"meeting|schedule|call|appointment|deadline")),
    (Category.FINANCE, re.compile(r"payment|invoice|bill|budget|cost|expense")),
    (Category.TECHNICAL, re.compile(r"bug|fix|error|install|repair|maintain")),
    (Category.SAFETY, re.compile(r"safety|hazard|inspection|compliance|ppe")),
]

PRIORITY_RULES: list[tuple[Priority, re.Pattern[str]]] = [
    (Priority.HIGH, re.compile(r"urgent|asap|immediately|today|critical|emergency")),
    (Priority.MEDIUM, re.compile(r"soon|important|week")),
]

SUGGESTED_ACTIONS: dict[Category, tuple[str, ...]] = {
    Category.SCHEDULING: ("Block calendar", "Send invite", "Prepare agenda", "Set reminder"),
    Category.FINANCE: ("Check budget", "Get approval", "Generate invoice", "Update records"),
    Category.TECHNICAL: ("Diagnose issue", "Check resources", "Assign technician", "Document fix"),
    Category.SAFETY: ("Conduct inspection", "File report", "Notify supervisor", "Update checklist"),
    Category.GENERAL: ("Review task", "Set reminder"),
}

DATE_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")
PEOPLE_PATTERN = re.compile(r"(?:with|by|assign to)\s+([A-Z][a-z]+)")


@dataclass
class ExtractedEntities:
    """Structured fragments pulled out of task text."""

    dates: list[str] = field(default_factory=list)  # YYYY-MM-DD, in order of occurrence
    people: list[str] = field(default_factory=list)


@dataclass
class ClassificationResult:
    """Everything the classifier derives from a title and description."""

    category: Category
    priority: Priority
    suggested_actions: list[str]
    extracted_entities: ExtractedEntities


def classify(
    title: str | None,
    description: str | None,
    legacy_people_extraction: bool = False,
) -> ClassificationResult:
    """Classify task text into category, priority, actions and entities.

    Pure and deterministic; never raises.

    Args:
        title: Task title (None is treated as empty)
        description: Task description (None is treated as empty)
        legacy_people_extraction: Scan the lower-cased text for people, as
            older releases did. The name pattern needs a capital letter, so
            this mode never finds anyone.

    Returns:
        Classification result
    """
    raw_content = f"{title or ''} {description or ''}"
    content = raw_content.lower()

    category = _first_match(CATEGORY_RULES, content, Category.GENERAL)
    priority = _first_match(PRIORITY_RULES, content, Priority.LOW)

    people_source = content if legacy_people_extraction else raw_content
    entities = ExtractedEntities(
        dates=DATE_PATTERN.findall(content),
        people=PEOPLE_PATTERN.findall(people_source),
    )

    logger.debug(
        f"[Classifier] category={category.value} priority={priority.value} "
        f"dates={len(entities.dates)} people={len(entities.people)}"
    )

    return ClassificationResult(
        category=category,
        priority=priority,
        suggested_actions=suggested_actions_for(category),
        extracted_entities=entities,
    )


def suggested_actions_for(category: Category) -> list[str]:
    """Return the canned next actions for a category."""
    return list(SUGGESTED_ACTIONS[category])


def _first_match(rules: list[tuple[T, re.Pattern[str]]], content: str, default: T) -> T:
    """Return the value of the first rule whose pattern occurs in content."""
    for value, pattern in rules:
        if pattern.search(content):
            return value
    return default
