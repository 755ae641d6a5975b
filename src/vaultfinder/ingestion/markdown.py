"""Heading outline and tag extraction for markdown notes."""

from __future__ import annotations

import logging
import re
from typing import List

import yaml

from vaultfinder.models import Heading

HEADING_PATTERN = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t]*#*[ \t]*$")
FENCE_PATTERN = re.compile(r"^[ \t]*(```|~~~)")
INLINE_TAG_PATTERN = re.compile(r"(?<![\w#/])#([A-Za-z_][\w/-]*)")
TAG_SEPARATORS = re.compile(r"[,\s]+")

LOGGER = logging.getLogger(__name__)


def _front_matter_end(lines: List[str]) -> int:
    """Index of the closing ``---`` of a front matter block, or -1."""
    if not lines or lines[0].strip() != "---":
        return -1
    for number in range(1, len(lines)):
        if lines[number].strip() in ("---", "..."):
            return number
    return -1


def _body_lines(lines: List[str]):
    """Yield ``(line_number, line)`` outside front matter and fenced code."""
    in_fence = False
    start = _front_matter_end(lines) + 1
    for number in range(start, len(lines)):
        line = lines[number]
        if FENCE_PATTERN.match(line):
            in_fence = not in_fence
            continue
        if not in_fence:
            yield number, line


def parse_outline(text: str) -> List[Heading]:
    """Return ATX headings in document order."""
    lines = text.split("\n")
    outline: List[Heading] = []
    for number, line in _body_lines(lines):
        match = HEADING_PATTERN.match(line)
        if match:
            outline.append(Heading(title=match.group(2).strip(), level=len(match.group(1)), line=number))
    return outline


def _front_matter_tags(lines: List[str]) -> List[str]:
    """``tags`` from the YAML front matter, as a list or a comma/space separated string."""
    end = _front_matter_end(lines)
    if end < 0:
        return []
    try:
        data = yaml.safe_load("\n".join(lines[1:end]))
    except yaml.YAMLError as exc:
        LOGGER.warning("Ignoring unparsable front matter: %s", exc)
        return []
    if not isinstance(data, dict):
        return []

    value = data.get("tags")
    if isinstance(value, str):
        value = TAG_SEPARATORS.split(value)
    elif not isinstance(value, list):
        return []
    tags = [str(tag).strip().lstrip("#") for tag in value if tag is not None]
    return [tag for tag in tags if tag]


def extract_tags(text: str) -> List[str]:
    """Collect front matter and inline ``#tags`` (without the ``#``), deduplicated."""
    lines = text.split("\n")
    found = _front_matter_tags(lines)
    for _, line in _body_lines(lines):
        if HEADING_PATTERN.match(line):
            continue
        found.extend(INLINE_TAG_PATTERN.findall(line))

    unique: List[str] = []
    for tag in found:
        if tag not in unique:
            unique.append(tag)
    return unique
