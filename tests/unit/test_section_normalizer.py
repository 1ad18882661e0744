"""Unit tests for visual and section normalization."""

import pytest

from insight_atlas.models import (
    CategoryChart,
    ComparisonMatrix,
    FlowDiagram,
    GenericVisual,
    Hierarchy,
    MindMap,
    RadarChart,
    Timeline,
)
from insight_atlas.services.section_normalizer import (
    MAX_HIERARCHY_DEPTH,
    normalize_visual,
    section_from_raw,
    sections_from_raw,
)


class TestNormalizeVisual:
    """Tests for normalize_visual across visual shapes."""

    def test_flow_diagram_mixed_nodes(self):
        visual = normalize_visual("flowDiagram", {"nodes": ["Plan", {"id": "2", "label": "Act"}, {"name": "Review"}]})

        assert isinstance(visual, FlowDiagram)
        assert visual.nodes == ["Plan", "Act", "Review"]

    def test_flow_chart_steps_alias(self):
        visual = normalize_visual("flowChart", {"steps": ["One", "Two"]})
        assert visual.nodes == ["One", "Two"]

    def test_comparison_matrix_row_shapes(self):
        visual = normalize_visual("comparisonMatrix", {
            "headers": ["Aspect", "Deep", "Shallow"],
            "rows": [
                {"label": "Value", "values": ["High", "Low"]},
                ["Effort", "Hard", "Easy"],
                "Frequency",
            ],
        })

        assert isinstance(visual, ComparisonMatrix)
        assert visual.headers == ["Aspect", "Deep", "Shallow"]
        assert visual.rows[0].label == "Value"
        assert visual.rows[0].values == ["High", "Low"]
        assert visual.rows[1].values == ["Effort", "Hard", "Easy"]
        assert visual.rows[2].label == "Frequency"

    def test_mind_map_branches(self):
        visual = normalize_visual("mindMap", {
            "center": "Deep Work",
            "branches": [
                {"label": "Rituals", "subbranches": ["Where", "When"]},
                {"name": "Rules", "children": [{"label": "Embrace boredom"}]},
                "Tools",
            ],
        })

        assert isinstance(visual, MindMap)
        assert visual.center == "Deep Work"
        assert [b.label for b in visual.branches] == ["Rituals", "Rules", "Tools"]
        assert visual.branches[0].subbranches == ["Where", "When"]
        assert visual.branches[1].subbranches == ["Embrace boredom"]

    def test_concept_map_connections(self):
        visual = normalize_visual("conceptMap", {
            "connections": [{"label": "Focus", "relationship": "requires"}],
        })

        assert isinstance(visual, MindMap)
        assert visual.center == "Central Concept"
        assert visual.branches[0].label == "Focus"
        assert visual.branches[0].subbranches == ["requires"]

    def test_timeline_event_keys(self):
        visual = normalize_visual("timeline", {"events": [
            {"date": "2016", "title": "Published"},
            {"period": "Week 1", "event": "Start", "description": "Begin rituals"},
            "Later",
        ]})

        assert isinstance(visual, Timeline)
        assert visual.events[0].date == "2016"
        assert visual.events[1].date == "Week 1"
        assert visual.events[1].title == "Start"
        assert visual.events[1].description == "Begin rituals"
        assert visual.events[2].title == "Later"

    def test_hierarchy_depth_is_bounded(self):
        node = {"label": "leaf"}
        for level in range(MAX_HIERARCHY_DEPTH + 3):
            node = {"label": f"level-{level}", "children": [node]}
        visual = normalize_visual("hierarchy", {"root": "Top", "children": [node]})

        assert isinstance(visual, Hierarchy)
        depth = 0
        children = visual.children
        while children:
            depth += 1
            children = children[0].children
        assert depth == MAX_HIERARCHY_DEPTH

    def test_radar_chart_values(self):
        visual = normalize_visual("radarChart", {"dimensions": [
            {"label": "Focus", "value": 8},
            {"dimension": "Rest", "score": 6.5},
            {"label": "Noise", "value": "high"},
        ]})

        assert isinstance(visual, RadarChart)
        assert [d.label for d in visual.dimensions] == ["Focus", "Rest", "Noise"]
        assert [d.value for d in visual.dimensions] == [8.0, 6.5, None]

    def test_bar_chart_from_parallel_arrays(self):
        visual = normalize_visual("barChart", {
            "title": "Hours of deep work",
            "labels": ["Mon", "Tue", "Wed"],
            "values": [3, 4.5],
        })

        assert isinstance(visual, CategoryChart)
        assert visual.kind == "barChart"
        assert visual.title == "Hours of deep work"
        assert [(p.label, p.value) for p in visual.points] == [("Mon", 3.0), ("Tue", 4.5), ("Wed", None)]

    def test_pie_chart_from_items(self):
        visual = normalize_visual("pieChart", {"data": [{"label": "Focus", "value": 60}, "Other"]})

        assert isinstance(visual, CategoryChart)
        assert visual.kind == "pieChart"
        assert visual.title is None
        assert [(p.label, p.value) for p in visual.points] == [("Focus", 60.0), ("Other", None)]

    def test_unknown_type_kept_generic(self):
        visual = normalize_visual("vennDiagram", {"sets": ["A", "B"]})

        assert isinstance(visual, GenericVisual)
        assert visual.visualType == "vennDiagram"
        assert visual.data == {"sets": ["A", "B"]}

    @pytest.mark.parametrize("data", [None, {}, [], "nodes"])
    def test_no_usable_data(self, data):
        assert normalize_visual("flowDiagram", data) is None


class TestSectionFromRaw:
    """Tests for section construction from model objects."""

    def test_defaults(self):
        section = section_from_raw({}, 3)

        assert section.type == "conceptExplanation"
        assert section.title == "Section 3"
        assert section.content == ""
        assert section.visualData is None

    def test_list_content_is_joined(self):
        section = section_from_raw({"title": "T", "content": ["one", "two"]}, 1)
        assert section.content == "one\ntwo"

    def test_non_dict_metadata_is_dropped(self):
        section = section_from_raw({"title": "T", "metadata": ["x"]}, 1)
        assert section.metadata is None

    def test_non_object_returns_none(self):
        assert section_from_raw("text", 1) is None

    def test_sections_from_raw_skips_non_objects(self):
        sections = sections_from_raw([{"title": "A"}, 42, {"type": "exercise"}])

        assert [s.title for s in sections] == ["A", "Section 2"]

    def test_sections_from_raw_non_list(self):
        assert sections_from_raw({"title": "A"}) == []
