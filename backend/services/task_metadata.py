"""
Partner / task-type metadata carried on Jira issues.

Jira has no notion of a partner or a task type, so both travel on every issue
we create or edit through two independent channels:

- labels: the tracking label plus ``partner:<slug>`` and ``type:<CODE>``,
  the only machine-readable channel, used by sync to recover associations
- a header line at the top of the description, e.g.
  ``[Partner: Acme | Type: Infrastructure]``, for people reading the issue
  in Jira itself

Everything here is pure so each channel can be tested on its own.
"""
import copy
import re
from typing import Dict, Iterable, List, Optional

from backend.models.task import TaskType, TASK_TYPE_LABELS

PARTNER_LABEL_PREFIX = "partner:"
TYPE_LABEL_PREFIX = "type:"
MAX_SLUG_LENGTH = 100

_WHITESPACE = re.compile(r"\s+")
_INVALID_LABEL_CHARS = re.compile(r"[^a-zA-Z0-9\-_]")
_HEADER_LINE = re.compile(r"\[(?:Partner: [^\n]+?(?: \| Type: [^\]\n]+)?|Type: [^\]\n]+)\]")


def sanitize_for_label(value: str) -> str:
    """Spaces to hyphens, drop anything outside [A-Za-z0-9_-], cap at 100 chars"""
    value = _WHITESPACE.sub("-", value)
    value = _INVALID_LABEL_CHARS.sub("", value)
    return value[:MAX_SLUG_LENGTH]


def task_type_label(task_type: Optional[str]) -> Optional[str]:
    """Display label for a task type code; unknown codes are shown verbatim"""
    if not task_type:
        return None
    try:
        return TASK_TYPE_LABELS[TaskType(task_type)]
    except ValueError:
        return str(task_type)


def _code(task_type) -> Optional[str]:
    if task_type is None:
        return None
    return task_type.value if isinstance(task_type, TaskType) else str(task_type)


def build_task_labels(
    base_label: str,
    partner_name: Optional[str] = None,
    task_type: Optional[str] = None,
) -> List[str]:
    labels = [base_label]
    if partner_name:
        labels.append(f"{PARTNER_LABEL_PREFIX}{sanitize_for_label(partner_name)}")
    code = _code(task_type)
    if code:
        labels.append(f"{TYPE_LABEL_PREFIX}{code}")
    return labels


def build_description_header(
    partner_name: Optional[str] = None,
    task_type: Optional[str] = None,
) -> Optional[str]:
    parts = []
    if partner_name:
        parts.append(f"Partner: {partner_name}")
    code = _code(task_type)
    if code:
        parts.append(f"Type: {task_type_label(code)}")
    if not parts:
        return None
    return f"[{' | '.join(parts)}]"


def build_description_with_header(
    description: Optional[str],
    partner_name: Optional[str] = None,
    task_type: Optional[str] = None,
) -> Optional[str]:
    header = build_description_header(partner_name, task_type)
    if header is None:
        return description
    return f"{header}\n\n{description}" if description else header


def is_description_header(line: Optional[str]) -> bool:
    """True only for a whole line in the form build_description_header emits"""
    return bool(line) and _HEADER_LINE.fullmatch(line) is not None


def strip_description_header(text: Optional[str]) -> Optional[str]:
    """Remove a leading metadata header line, if present"""
    if not text:
        return text
    first_line, _, rest = text.partition("\n")
    if not is_description_header(first_line):
        return text
    return rest.lstrip("\n") or None


def _leading_text_node(content: list) -> Optional[dict]:
    if not content or content[0].get("type") != "paragraph":
        return None
    inline = content[0].get("content") or []
    if not inline or inline[0].get("type") != "text":
        return None
    return inline[0]


def replace_description_header(
    doc: Optional[dict],
    partner_name: Optional[str] = None,
    task_type: Optional[str] = None,
) -> Optional[dict]:
    """
    Swap the metadata header on an ADF description, leaving every other node as it was.

    A header at the start of the first paragraph is rewritten (or removed) in
    place; otherwise a new header paragraph goes in front. Returns None when the
    resulting document has no content.
    """
    doc = copy.deepcopy(doc) if doc else {"type": "doc", "version": 1, "content": []}
    content = doc.setdefault("content", [])
    header = build_description_header(partner_name, task_type)

    node = _leading_text_node(content)
    if node is not None and is_description_header(node.get("text", "").partition("\n")[0]):
        text = build_description_with_header(
            strip_description_header(node["text"]), partner_name, task_type
        )
        if text:
            node["text"] = text
        else:
            paragraph = content[0]
            paragraph["content"].pop(0)
            if not paragraph["content"]:
                content.pop(0)
    elif header:
        content.insert(0, {"type": "paragraph", "content": [{"type": "text", "text": header}]})

    return doc if content else None


def replace_metadata_labels(
    labels: Iterable[str],
    base_label: str,
    partner_name: Optional[str] = None,
    task_type: Optional[str] = None,
) -> List[str]:
    """Swap partner/type labels for fresh ones, keeping any unrelated labels"""
    fresh = build_task_labels(base_label, partner_name, task_type)
    kept = [
        label for label in labels
        if label != base_label
        and not label.startswith(PARTNER_LABEL_PREFIX)
        and not label.startswith(TYPE_LABEL_PREFIX)
    ]
    return fresh + kept


def extract_partner_from_labels(labels: Iterable[str]) -> Optional[str]:
    for label in labels:
        if label.startswith(PARTNER_LABEL_PREFIX):
            return label[len(PARTNER_LABEL_PREFIX):]
    return None


def extract_task_type_from_labels(labels: Iterable[str]) -> Optional[str]:
    """First ``type:`` label, or None when absent or not a known TaskType"""
    for label in labels:
        if label.startswith(TYPE_LABEL_PREFIX):
            code = label[len(TYPE_LABEL_PREFIX):]
            try:
                return TaskType(code).value
            except ValueError:
                return None
    return None


def partner_slug_key(name: str) -> str:
    return sanitize_for_label(name).lower()


def build_partner_lookup(partners: Iterable) -> Dict[str, int]:
    """Map lower-cased sanitized partner name -> partner id"""
    return {partner_slug_key(p.name): p.id for p in partners}


def resolve_partner_id(lookup: Dict[str, int], slug: Optional[str]) -> Optional[int]:
    """Exact case-insensitive slug match only; no match is None, never an error"""
    if not slug:
        return None
    return lookup.get(slug.lower())
