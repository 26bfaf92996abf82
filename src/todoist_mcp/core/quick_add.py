"""Quick-add text parsing.

Splits a single line such as ``"Buy milk #Groceries @errand p1 tomorrow at 5pm"``
into task fields. The parser is purely textual: resolving the project name
to an ID is the caller's job.

Grammar (each marker is optional and may appear anywhere):

    #word       project name
    @word       label (repeatable)
    p1..p4      priority, p1 being the most urgent
    date phrase everything from the last date keyword to the end of the text,
                pulled back over "every", "next" or "this" and over one
                connector ("on", "by", "due", "at") which is dropped
"""

import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from todoist_mcp.core.errors import InvalidArgumentError

_PROJECT_RE = re.compile(r"(?<!\S)#(\w+)")
_LABEL_RE = re.compile(r"(?<!\S)@(\w+)")
_PRIORITY_RE = re.compile(r"(?<!\S)p([1-4])(?!\S)", re.IGNORECASE)

DATE_KEYWORDS = frozenset(
    {
        "today",
        "tonight",
        "tomorrow",
        "monday",
        "tuesday",
        "wednesday",
        "thursday",
        "friday",
        "saturday",
        "sunday",
        "weekend",
        "weekday",
        "daily",
        "weekly",
        "monthly",
        "yearly",
        "january",
        "february",
        "march",
        "april",
        "may",
        "june",
        "july",
        "august",
        "september",
        "october",
        "november",
        "december",
        "jan",
        "feb",
        "mar",
        "apr",
        "jun",
        "jul",
        "aug",
        "sep",
        "sept",
        "oct",
        "nov",
        "dec",
    }
)

_DUE_PREFIXES = frozenset({"every", "next", "this"})
_DUE_CONNECTORS = frozenset({"on", "by", "due", "at"})

# Todoist's API priority runs the other way: 4 is urgent (shown as p1)
_PRIORITY_MAP = {"1": 4, "2": 3, "3": 2, "4": 1}


@dataclass
class QuickAddParse:
    """Fields extracted from quick-add text.

    Attributes:
        content: Task title with all markers removed
        project_name: Name after ``#``, unresolved
        labels: Names after ``@``, de-duplicated in order of appearance
        priority: API priority (4 urgent .. 1 normal), None if absent
        due_string: Natural-language due date for Todoist to interpret
    """

    content: str
    project_name: Optional[str] = None
    labels: List[str] = field(default_factory=list)
    priority: Optional[int] = None
    due_string: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _normalize(word: str) -> str:
    return word.lower().strip(",.;:!?")


def _split_due(words: List[str]):
    """Return ``(content_words, due_string)``."""
    keyword_index = None
    for index in range(len(words) - 1, -1, -1):
        if _normalize(words[index]) in DATE_KEYWORDS:
            keyword_index = index
            break
    if keyword_index is None:
        return words, None

    start = keyword_index
    while start > 0 and _normalize(words[start - 1]) in _DUE_PREFIXES:
        start -= 1
    due_words = words[start:]

    content_end = start
    if content_end > 0 and _normalize(words[content_end - 1]) in _DUE_CONNECTORS:
        content_end -= 1

    return words[:content_end], " ".join(due_words)


def parse_quick_add(text: Optional[str]) -> QuickAddParse:
    """Parse quick-add text into task fields.

    Raises:
        InvalidArgumentError: if the text is empty or nothing but markers

    Example:
        >>> parse_quick_add("Buy milk #Groceries @errand p1 tomorrow at 5pm")
        QuickAddParse(content='Buy milk', project_name='Groceries',
                      labels=['errand'], priority=4, due_string='tomorrow at 5pm')
    """
    if text is None or not text.strip():
        raise InvalidArgumentError("text is required", field="text")

    project_name = None
    project_match = _PROJECT_RE.search(text)
    if project_match:
        project_name = project_match.group(1)
    remaining = _PROJECT_RE.sub(" ", text)

    labels: List[str] = []
    for label in _LABEL_RE.findall(remaining):
        if label not in labels:
            labels.append(label)
    remaining = _LABEL_RE.sub(" ", remaining)

    priority = None
    priority_match = _PRIORITY_RE.search(remaining)
    if priority_match:
        priority = _PRIORITY_MAP[priority_match.group(1)]
    remaining = _PRIORITY_RE.sub(" ", remaining)

    content_words, due_string = _split_due(remaining.split())
    content = " ".join(content_words)
    if not content:
        raise InvalidArgumentError(
            "text must contain a task title besides project, label, priority "
            "and date markers",
            field="text",
        )

    return QuickAddParse(
        content=content,
        project_name=project_name,
        labels=labels,
        priority=priority,
        due_string=due_string,
    )
