import pytest

from models.generation import Confidence, DataSource, Widget, WidgetType
from orchestrator.schema_validator import (
    check_widget_data,
    validate_data,
    validate_multi_dataset,
    validate_plan,
    validate_widget,
)


def plan_payload(**overrides):
    payload = {
        "widgetType": "metric-card",
        "dataSource": "internal-database",
        "searchQuery": None,
        "queryIntent": "Current MRR from latest snapshot",
        "dataStructure": "single-value",
        "keyEntities": ["MRR"],
        "reasoning": "Single internal metric",
    }
    payload.update(overrides)
    return payload


class TestValidatePlan:
    def test_valid_plan(self):
        result = validate_plan(plan_payload())
        assert result.valid
        assert result.errors == []
        assert result.value.widget_type == WidgetType.METRIC_CARD
        assert result.value.data_source == DataSource.INTERNAL_DATABASE
        assert result.value.to_dict()["queryIntent"] == "Current MRR from latest snapshot"

    def test_unknown_widget_type_is_rejected(self):
        result = validate_plan(plan_payload(widgetType="pie-slice"))
        assert not result.valid
        assert result.value is None
        assert any(e.startswith("widgetType") for e in result.errors)

    def test_missing_required_field(self):
        payload = plan_payload()
        del payload["dataStructure"]
        result = validate_plan(payload)
        assert not result.valid
        assert any("dataStructure" in e for e in result.errors)

    @pytest.mark.parametrize(
        "legacy, expected",
        [("mock-database", DataSource.INTERNAL_DATABASE), ("example-data", DataSource.SYNTHETIC_EXAMPLE)],
    )
    def test_legacy_source_names(self, legacy, expected):
        result = validate_plan(plan_payload(dataSource=legacy))
        assert result.valid
        assert result.value.data_source == expected

    def test_web_search_without_query_uses_key_entities(self):
        result = validate_plan(
            plan_payload(dataSource="web-search", queryIntent=None, keyEntities=["Tokyo", "weather"])
        )
        assert result.valid
        assert result.value.search_query == "Tokyo weather"
        assert result.warnings

    def test_non_object_payload(self):
        assert not validate_plan(["not", "a", "plan"]).valid

    def test_extra_fields_are_ignored(self):
        assert validate_plan(plan_payload(confidenceScore=0.9)).valid


class TestValidateData:
    def test_valid_data(self):
        result = validate_data({"data": {"value": 745}, "source": "internal-database", "confidence": "high"})
        assert result.valid
        assert result.value.confidence == Confidence.HIGH
        assert result.value.field_count == 1

    def test_null_source_allowed(self):
        result = validate_data({"data": {}, "source": None, "confidence": "low"})
        assert result.valid
        assert result.value.source is None

    def test_bad_confidence(self):
        result = validate_data({"data": {}, "source": "x", "confidence": "certain"})
        assert not result.valid
        assert any(e.startswith("confidence") for e in result.errors)

    def test_missing_source(self):
        assert not validate_data({"data": {}, "confidence": "low"}).valid


class TestValidateWidget:
    def test_nested_container(self):
        result = validate_widget(
            {
                "type": "container",
                "config": {"variant": "split"},
                "children": [
                    {"type": "metric-card", "data": {"label": "MRR", "value": 745}},
                    {"type": "list", "data": {"items": ["a"]}},
                ],
            }
        )
        assert result.valid
        widget = result.value
        assert widget.is_container
        assert [c.type for c in widget.children] == [WidgetType.METRIC_CARD, WidgetType.LIST]

    def test_empty_container_is_rejected(self):
        result = validate_widget({"type": "container", "config": {"variant": "tabs"}, "children": []})
        assert not result.valid

    def test_leaf_with_children_is_rejected(self):
        result = validate_widget(
            {"type": "list", "data": {"items": []}, "children": [{"type": "quote", "data": {}}]}
        )
        assert not result.valid
        assert any("list widgets cannot have children" in e for e in result.errors)

    def test_error_path_points_at_nested_child(self):
        result = validate_widget(
            {"type": "container", "config": {"variant": "grid"}, "children": [{"type": "nope"}]}
        )
        assert not result.valid
        assert any(e.startswith("children.0.type") for e in result.errors)

    def test_bad_interaction_type(self):
        result = validate_widget(
            {"type": "chart", "data": {}, "interactions": [{"type": "drag", "effect": "move"}]}
        )
        assert not result.valid

    def test_update_interval_is_clamped(self):
        result = validate_widget({"type": "stock-ticker", "data": {}, "updateInterval": 1000})
        assert result.valid
        assert result.value.update_interval == 5000
        assert result.value.to_dict()["updateInterval"] == 5000
        assert result.warnings == ["updateInterval 1000 raised to 5000"]

    def test_nested_update_interval_warning_has_path(self):
        result = validate_widget(
            {
                "type": "container",
                "config": {"variant": "grid"},
                "children": [{"type": "weather", "data": {}, "updateInterval": 10}],
            }
        )
        assert result.value.children[0].update_interval == 5000
        assert result.warnings == ["children.0.updateInterval 10 raised to 5000"]

    def test_update_interval_above_minimum_is_kept(self):
        result = validate_widget({"type": "weather", "data": {}, "updateInterval": 60000})
        assert result.value.update_interval == 60000
        assert result.warnings == []


class TestMultiDataset:
    def test_consistent(self):
        data = {"labels": ["Q1", "Q2"], "datasets": [{"name": "A", "values": [1, 2.5]}]}
        assert validate_multi_dataset(data) == []

    def test_length_mismatch(self):
        data = {"labels": ["Q1", "Q2"], "datasets": [{"name": "A", "values": [1]}]}
        issues = validate_multi_dataset(data)
        assert issues == ["datasets.0.values has 1 entries but there are 2 labels"]

    def test_non_numeric_values(self):
        data = {"labels": ["Q1"], "datasets": [{"name": "A", "values": ["1"]}]}
        assert "datasets.0.values must contain only numbers" in validate_multi_dataset(data)

    def test_empty_datasets(self):
        assert validate_multi_dataset({"labels": [], "datasets": []}) == [
            "datasets must be a non-empty array"
        ]


class TestCheckWidgetData:
    def test_complete_metric_card(self):
        widget = Widget(type=WidgetType.METRIC_CARD, data={"label": "MRR", "value": 745})
        assert check_widget_data(widget) == []

    def test_missing_metric_value(self):
        widget = Widget(type=WidgetType.METRIC_CARD, data={"label": "MRR"})
        assert check_widget_data(widget) == ["metric-card: metric-card is missing data.value"]

    def test_chart_requires_points_or_datasets(self):
        widget = Widget(type=WidgetType.CHART, data={}, config={"chartType": "bar"})
        assert check_widget_data(widget) == ["chart: chart is missing data.points or data.datasets"]

    def test_comparison_accepts_items(self):
        widget = Widget(type=WidgetType.COMPARISON, data={"items": [{"name": "A"}]})
        assert check_widget_data(widget) == []

    def test_issues_in_children_carry_path(self):
        widget = Widget(
            type=WidgetType.CONTAINER,
            config={"variant": "tabs"},
            children=[Widget(type=WidgetType.QUOTE, data={"quote": "Hi"})],
        )
        assert check_widget_data(widget) == ["children.0: quote is missing data.author"]

    def test_container_without_variant_or_children(self):
        widget = Widget(type=WidgetType.CONTAINER)
        assert check_widget_data(widget) == [
            "container: container is missing config.variant",
            "container: container has no children",
        ]
