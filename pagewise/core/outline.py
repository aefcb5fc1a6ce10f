"""Outline normalization: nested table of contents -> page-bounded Section tree."""

import math
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

from .sections import Section, flatten_sections

logger = logging.getLogger(__name__)

DestinationResolver = Callable[[Any], int | None]


@dataclass
class OutlineNode:
    title: str
    destination: Any = None
    children: list["OutlineNode"] = field(default_factory=list)


def outline_from_toc(toc: list) -> list[OutlineNode]:
    """Nest a flat ``[level, title, page, ...]`` list (PyMuPDF ``get_toc``) by level."""
    roots: list[OutlineNode] = []
    stack: list[tuple[int, OutlineNode]] = []
    for entry in toc:
        if len(entry) < 3:
            continue
        level, title, page = int(entry[0]), str(entry[1]).strip(), entry[2]
        node = OutlineNode(title=title, destination=page)
        while stack and stack[-1][0] >= level:
            stack.pop()
        if stack:
            stack[-1][1].children.append(node)
        else:
            roots.append(node)
        stack.append((level, node))
    return roots


def normalize_outline(
    outline: list | None,
    total_pages: int,
    resolve_destination: DestinationResolver | None = None,
) -> list[Section]:
    """Build the section tree for a document.

    Falls back to equal-width default sections when the outline is empty or
    nothing in it could be parsed. End pages are always recomputed.
    """
    if total_pages < 1:
        return []

    sections: list[Section] = []
    if outline:
        sections = _parse_nodes(outline, total_pages, resolve_destination, level=1, path=())
    if not sections:
        sections = create_default_sections(total_pages)
        logger.info("No usable outline, created %d default sections", len(sections))

    compute_end_pages(sections, total_pages)
    return sections


def create_default_sections(total_pages: int) -> list[Section]:
    if total_pages < 1:
        return []
    count = math.ceil(total_pages / 10)
    width = math.ceil(total_pages / count)
    sections = []
    for start in range(1, total_pages + 1, width):
        n = len(sections)
        sections.append(Section(
            id=f"default_section_{n}",
            title=f"Section {n + 1}",
            start_page=start,
            end_page=min(start + width - 1, total_pages),
        ))
    return sections


def compute_end_pages(sections: list[Section], total_pages: int) -> None:
    """Set each section's end page from the next section's start page.

    The flattened list is sorted by start page; results land on the tree
    nodes through an id lookup.
    """
    flat = sorted(flatten_sections(sections), key=lambda s: s.start_page)
    end_pages: dict[str, int] = {}
    for i, section in enumerate(flat):
        if i < len(flat) - 1:
            end = flat[i + 1].start_page - 1
        else:
            end = total_pages
        end_pages[section.id] = max(end, section.start_page)

    for section in flatten_sections(sections):
        if section.id in end_pages:
            section.end_page = end_pages[section.id]


def _parse_nodes(nodes, total_pages, resolve, level: int, path: tuple) -> list[Section]:
    sections: list[Section] = []
    for i, node in enumerate(nodes):
        parsed = _node_fields(node)
        if parsed is None:
            logger.warning("Skipping malformed outline node: %r", node)
            continue
        title, destination, children = parsed
        node_path = path + (i + 1,)

        page = _clamp(_resolve_page(destination, resolve), total_pages)
        section = Section(
            id="section_" + "_".join(str(p) for p in node_path),
            title=title or f"Section {len(sections) + 1}",
            start_page=page,
            end_page=page,
            level=level,
        )
        if children:
            section.children = _parse_nodes(children, total_pages, resolve, level + 1, node_path)
        sections.append(section)
    return sections


def _node_fields(node) -> tuple[str, Any, list] | None:
    if isinstance(node, OutlineNode):
        return (node.title or "").strip(), node.destination, node.children
    if isinstance(node, Mapping):
        title = node.get("title") or ""
        destination = node.get("destination", node.get("dest"))
        children = node.get("children", node.get("items")) or []
        if not isinstance(children, list):
            children = []
        return str(title).strip(), destination, children
    return None


def _resolve_page(destination, resolve: DestinationResolver | None) -> int:
    if destination is None:
        return 1
    try:
        page = resolve(destination) if resolve else destination
    except Exception as e:
        logger.warning("Could not resolve outline destination %r: %s", destination, e)
        return 1
    if isinstance(page, bool) or not isinstance(page, int):
        return 1
    return page


def _clamp(page: int, total_pages: int) -> int:
    return max(1, min(page, total_pages))
