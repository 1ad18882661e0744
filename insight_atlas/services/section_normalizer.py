"""Normalization of raw model output into Section and Visual models.

Models emit visuals in several shapes for the same kind: nodes as strings
or as `{id, label}` objects, mind-map branches with `subbranches` or
`children`, timeline events keyed by `date`/`time`/`period`. Everything is
converted here, once, at the parse boundary.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

from insight_atlas.models import (
    CategoryChart,
    ChartPoint,
    ComparisonMatrix,
    FlowDiagram,
    GenericVisual,
    Hierarchy,
    HierarchyNode,
    MatrixRow,
    MindMap,
    MindMapBranch,
    RadarChart,
    RadarDimension,
    Section,
    SectionType,
    Timeline,
    TimelineEvent,
)

logger = logging.getLogger(__name__)

LABEL_KEYS = ("label", "name", "title", "id")

# Max depth kept for hierarchy visuals
MAX_HIERARCHY_DEPTH = 4


def _label(item: Any, keys: tuple[str, ...] = LABEL_KEYS) -> str:
    """Best display label for a string-or-object item."""
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        for key in keys:
            value = item.get(key)
            if value:
                return str(value)
        return json.dumps(item, ensure_ascii=False)
    if item is None:
        return ""
    return str(item)


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _flow_diagram(data: dict) -> FlowDiagram:
    return FlowDiagram(nodes=[_label(node) for node in _as_list(data.get("nodes") or data.get("steps"))])


def _comparison_matrix(data: dict) -> ComparisonMatrix:
    rows: list[MatrixRow] = []
    for row in _as_list(data.get("rows")):
        if isinstance(row, dict):
            values = row.get("values") or row.get("cells") or []
            rows.append(MatrixRow(label=_label(row.get("label") or row.get("name") or row.get("title") or ""),
                                  values=[_label(v) for v in _as_list(values)]))
        elif isinstance(row, list):
            rows.append(MatrixRow(label="", values=[_label(v) for v in row]))
        else:
            rows.append(MatrixRow(label=_label(row)))
    return ComparisonMatrix(headers=[_label(h) for h in _as_list(data.get("headers"))], rows=rows)


def _mind_map(data: dict) -> MindMap:
    branches: list[MindMapBranch] = []
    for branch in _as_list(data.get("branches")):
        subs = []
        if isinstance(branch, dict):
            subs = [_label(s) for s in _as_list(branch.get("subbranches") or branch.get("children"))]
        branches.append(MindMapBranch(label=_label(branch), subbranches=subs))

    # conceptMap shape: {"center", "connections": [{"label", "relationship"}]}
    for connection in _as_list(data.get("connections")):
        relationship = connection.get("relationship") if isinstance(connection, dict) else None
        branches.append(MindMapBranch(
            label=_label(connection),
            subbranches=[str(relationship)] if relationship else [],
        ))

    center = data.get("center")
    return MindMap(center=_label(center) if center else "Central Concept", branches=branches)


def _timeline(data: dict) -> Timeline:
    events: list[TimelineEvent] = []
    for event in _as_list(data.get("events")):
        if isinstance(event, dict):
            description = event.get("description")
            events.append(TimelineEvent(
                date=str(event.get("date") or event.get("time") or event.get("period") or ""),
                title=str(event.get("title") or event.get("label") or event.get("name") or event.get("event") or ""),
                description=str(description) if description else None,
            ))
        else:
            events.append(TimelineEvent(title=_label(event)))
    return Timeline(events=events)


def _hierarchy_nodes(items: Any, depth: int) -> list[HierarchyNode]:
    if depth >= MAX_HIERARCHY_DEPTH:
        return []
    nodes = []
    for item in _as_list(items):
        children = item.get("children") or item.get("subbranches") if isinstance(item, dict) else None
        nodes.append(HierarchyNode(label=_label(item), children=_hierarchy_nodes(children, depth + 1)))
    return nodes


def _hierarchy(data: dict) -> Hierarchy:
    root = data.get("root")
    return Hierarchy(
        root=_label(root) if root else "Root",
        children=_hierarchy_nodes(data.get("children"), 0),
    )


def _number(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def _category_chart(kind: str) -> Callable[[dict], CategoryChart]:
    def build(data: dict) -> CategoryChart:
        # Either parallel labels/values arrays or a list of {label, value} items
        labels = _as_list(data.get("labels"))
        if labels:
            values = _as_list(data.get("values"))
            points = [
                ChartPoint(label=_label(label), value=_number(values[i]) if i < len(values) else None)
                for i, label in enumerate(labels)
            ]
        else:
            points = [
                ChartPoint(
                    label=_label(item),
                    value=_number(item.get("value")) if isinstance(item, dict) else None,
                )
                for item in _as_list(data.get("data") or data.get("items"))
            ]
        title = data.get("title")
        return CategoryChart(kind=kind, title=str(title) if title else None, points=points)

    return build


def _radar_chart(data: dict) -> RadarChart:
    dimensions = []
    for dim in _as_list(data.get("dimensions")):
        value = _number(dim.get("value", dim.get("score"))) if isinstance(dim, dict) else None
        dimensions.append(RadarDimension(label=_label(dim, LABEL_KEYS + ("dimension",)), value=value))
    return RadarChart(dimensions=dimensions)


VISUAL_BUILDERS: dict[str, Callable[[dict], Any]] = {
    "flowDiagram": _flow_diagram,
    "flowChart": _flow_diagram,
    "comparisonMatrix": _comparison_matrix,
    "comparisonTable": _comparison_matrix,
    "mindMap": _mind_map,
    "conceptMap": _mind_map,
    "timeline": _timeline,
    "hierarchy": _hierarchy,
    "radarChart": _radar_chart,
    "barChart": _category_chart("barChart"),
    "pieChart": _category_chart("pieChart"),
}


def normalize_visual(visual_type: Optional[str], data: Any):
    """Convert raw `visualData` into a Visual variant.

    Returns None when there is no usable data.
    """
    if not isinstance(data, dict) or not data:
        return None
    builder = VISUAL_BUILDERS.get(visual_type or "")
    if builder is None:
        return GenericVisual(visualType=visual_type or "unknown", data=data)
    return builder(data)


def _content_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "\n".join(_label(item) for item in value)
    if value is None:
        return ""
    return json.dumps(value, ensure_ascii=False)


def section_from_raw(raw: Any, index: int) -> Optional[Section]:
    """Build a Section from one model-emitted object.

    Args:
        raw: Parsed JSON object for the section.
        index: 1-based position, used for fallback titles.

    Returns:
        The section, or None when `raw` is not an object.
    """
    if not isinstance(raw, dict):
        return None

    visual_type = raw.get("visualType") if isinstance(raw.get("visualType"), str) else None
    metadata = raw.get("metadata") if isinstance(raw.get("metadata"), dict) else None

    return Section(
        id=str(raw["id"]) if raw.get("id") else None,
        type=str(raw.get("type") or SectionType.conceptExplanation.value),
        title=str(raw.get("title") or f"Section {index}"),
        content=_content_text(raw.get("content")),
        visualType=visual_type,
        visualData=normalize_visual(visual_type, raw.get("visualData")),
        metadata=metadata,
    )


def sections_from_raw(items: Any) -> list[Section]:
    """Build sections from a list of raw objects, skipping non-objects."""
    sections = []
    for raw in _as_list(items):
        section = section_from_raw(raw, len(sections) + 1)
        if section is None:
            logger.debug("Skipping non-object section entry: %r", raw)
            continue
        sections.append(section)
    return sections
