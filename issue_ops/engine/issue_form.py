"""
Parser for GitHub issue-form bodies.

GitHub renders an issue form as Markdown, one ``### Label`` heading per
field followed by the submitted value::

    ### Display Name

    Utah Roads

    ### Source

    - [x] Manual
    - [ ] Other

Headings become kebab-case keys (``display-name``). Only the first value
line of a known field is kept; placeholders such as ``_No response_`` are
ignored. The checked boxes under ``Source`` are collected as a list, with
``Other`` replaced by the ``Other Source Details`` answer when given.
"""

import re
from typing import Any

from issue_ops.engine.codec import StateCodec

KNOWN_FIELDS = frozenset(
    {
        "display-name",
        "reasons-for-deprecation",
        "migration-guide",
        "internal-sgid-table",
        "open-sgid-table",
        "arcgis-online-item-id",
        "arcgis-online-id",
        "sgid-on-arcgis-url",
        "product-page-url",
        "sgid-index-id",
        "archives-record-series",
        "source",
        "historic-relevance",
    }
)

HEADER_PATTERN = re.compile(r"^###\s+(.+)$")
CHECKED_PATTERN = re.compile(r"^-\s+\[x\]\s+(.+)$", re.IGNORECASE)
UNCHECKED_PATTERN = re.compile(r"^-\s+\[\s*\]\s+")
NO_RESPONSE = "_No response_"


def field_key(header: str) -> str:
    return re.sub(r"\s+", "-", header.strip().lower())


def _is_value(line: str) -> bool:
    return bool(line.strip()) and not line.startswith(NO_RESPONSE) and not line.startswith("<!--") and (
        "placeholder" not in line
    )


def parse_issue_form(body: str) -> dict[str, Any]:
    """Parse an issue-form body into a mapping of field key to value.

    Any embedded workflow state block is removed first. Fields without an
    answer are omitted.
    """
    text = StateCodec().strip(body or "")

    result: dict[str, Any] = {}
    sources: list[str] = []
    other_details: str | None = None
    current: str | None = None

    for line in text.splitlines():
        header = HEADER_PATTERN.match(line)
        if header:
            current = field_key(header.group(1))
            continue

        if current == "source" and line.strip():
            checked = CHECKED_PATTERN.match(line)
            if checked:
                sources.append(checked.group(1).strip())
                continue
            if UNCHECKED_PATTERN.match(line):
                continue

        if current == "other-source-details" and line.strip() and not line.startswith(NO_RESPONSE):
            other_details = line.strip()
            current = None
            continue

        if current in KNOWN_FIELDS and current != "source" and _is_value(line):
            result[current] = line.strip()
            current = None

    if other_details and "Other" in sources:
        sources[sources.index("Other")] = other_details

    if sources:
        result["source"] = sources

    return result
