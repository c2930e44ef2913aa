"""
Heading-based section recovery for generated pieces.

Generated text is free-form Markdown-ish prose whose subsection headings
(``##`` or deeper) follow the template blocks only approximately. This
module scans the lines once, turns every heading into a Section spanning
the lines up to the next heading, and matches headings to template blocks
by normalized title. Matching is best-effort: a heading that matches no
block still yields a Section with ``block_name = None``.

Public API
----------
parse_sections(text, template)                 -> ParsedSections
get_section_content(lines, section)            -> str
replace_section_content(lines, section, text)  -> List[str]
resolve_section(parsed, topic_identifier)      -> Optional[Section]
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from lexdraft.services.templates import Template, format_block_title
from lexdraft.utils.helpers import normalize_key

# Depth >= 2 only: a single "#" is the document title, not a section.
HEADING_RE = re.compile(r"^\s{0,3}(#{2,6})\s+(.+?)\s*#*\s*$")


@dataclass
class Section:
    """A heading and the body span that follows it."""

    heading: str
    level: int                          # number of '#' characters
    heading_line: int
    start: int                          # first body line
    end: int                            # one past the last body line
    block_name: Optional[str] = None

    @property
    def key(self) -> str:
        return normalize_key(self.heading)


@dataclass
class ParsedSections:
    lines: List[str]
    sections: List[Section] = field(default_factory=list)
    by_block: Dict[str, Section] = field(default_factory=dict)


def split_lines(text: str) -> List[str]:
    """Split on '\\n' only, so '\\r' endings survive a round trip."""
    return text.split("\n")


def join_lines(lines: List[str]) -> str:
    return "\n".join(lines)


def parse_heading(line: str) -> Optional[tuple]:
    """Return ``(level, title)`` when *line* is a subsection heading."""
    match = HEADING_RE.match(line.rstrip("\r"))
    if not match:
        return None
    return len(match.group(1)), match.group(2).strip()


def _match_block(heading_key: str, candidates: Dict[str, str]) -> Optional[str]:
    """
    Pick the template block for a heading key.

    *candidates* maps block name -> normalized display key for the blocks not
    yet claimed by an earlier heading.
    """
    if not heading_key:
        return None
    for block, block_key in candidates.items():
        if heading_key == block_key:
            return block
    padded = f"_{heading_key}_"
    for block, block_key in candidates.items():
        if f"_{block_key}_" in padded:
            return block
    return None


def parse_sections(text: str, template: Optional[Template] = None) -> ParsedSections:
    """
    Scan *text* once and return its lines, sections and block mapping.

    Each template block resolves to at most one section (the first heading
    that matches it). Sections are ordered, contiguous and never overlap.
    """
    lines = split_lines(text)
    parsed = ParsedSections(lines=lines)

    candidates: Dict[str, str] = {}
    if template is not None:
        candidates = {
            block: normalize_key(format_block_title(block)) for block in template.sections
        }

    current: Optional[Section] = None
    for index, line in enumerate(lines):
        heading = parse_heading(line)
        if heading is None:
            continue

        if current is not None:
            current.end = index
        level, title = heading
        current = Section(
            heading=title,
            level=level,
            heading_line=index,
            start=index + 1,
            end=len(lines),
        )

        block = _match_block(current.key, candidates)
        if block is not None:
            current.block_name = block
            parsed.by_block[block] = current
            del candidates[block]

        parsed.sections.append(current)

    return parsed


def get_section_content(lines: List[str], section: Section) -> str:
    """Trimmed body text of *section*; empty string for an empty span."""
    if section.end <= section.start:
        return ""
    return join_lines(lines[section.start:section.end]).strip()


def replace_section_content(lines: List[str], section: Section, new_text: str) -> List[str]:
    """
    Return a new line list with the body of *section* replaced.

    Every line outside ``[section.start, section.end)`` is kept unchanged.
    The new body is framed by one blank line on each side so it stays
    visually separated from its heading and from the next one.
    """
    body = split_lines(new_text.strip()) if new_text.strip() else []
    replacement = [""] + body + [""] if body else [""]
    return lines[:section.start] + replacement + lines[section.end:]


def resolve_section(parsed: ParsedSections, topic_identifier: str) -> Optional[Section]:
    """
    Find the section a caller means by *topic_identifier*.

    Tried in order: exact block name, normalized block name, normalized
    heading text.
    """
    if not topic_identifier:
        return None

    section = parsed.by_block.get(topic_identifier)
    if section is not None:
        return section

    wanted = normalize_key(topic_identifier)
    if not wanted:
        return None

    for block, section in parsed.by_block.items():
        if normalize_key(block) == wanted:
            return section

    for section in parsed.sections:
        if section.key == wanted:
            return section
    return None
