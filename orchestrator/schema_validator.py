"""
Shape checks for the JSON the agent returns in each phase.

The pydantic models describe the wire format (camelCase). ``validate_*``
never raise: they return a ValidationResult whose ``value`` is the converted
frozen record (Plan / DataResult / Widget) when the payload is usable.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from models.generation import (
    LEGACY_DATA_SOURCES,
    MIN_UPDATE_INTERVAL_MS,
    Confidence,
    DataResult,
    DataSource,
    DataStructure,
    Interaction,
    InteractionType,
    Plan,
    Widget,
    WidgetType,
)

T = TypeVar("T")


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    valid: bool
    errors: list[str] = field(default_factory=list)
    value: Optional[T] = None
    warnings: list[str] = field(default_factory=list)


class PlanSchema(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    widget_type: WidgetType = Field(alias="widgetType")
    data_source: DataSource = Field(alias="dataSource")
    data_structure: DataStructure = Field(alias="dataStructure")
    key_entities: list[str] | None = Field(None, alias="keyEntities")
    search_query: str | None = Field(None, alias="searchQuery")
    query_intent: str | None = Field(None, alias="queryIntent")
    reasoning: str | None = None

    @field_validator("data_source", mode="before")
    @classmethod
    def accept_legacy_source(cls, value):
        if isinstance(value, str) and value in LEGACY_DATA_SOURCES:
            return LEGACY_DATA_SOURCES[value].value
        return value


class DataSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: Any = None
    source: str | None
    confidence: Confidence


class InteractionSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: InteractionType
    effect: str
    target: str | None = None


class WidgetSchema(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: WidgetType
    data: Any = None
    config: dict[str, Any] | None = None
    interactions: list[InteractionSchema] | None = None
    children: list["WidgetSchema"] | None = None
    update_interval: int | None = Field(None, alias="updateInterval")
    last_updated: str | None = Field(None, alias="lastUpdated")

    @model_validator(mode="after")
    def check_children(self):
        if self.type == WidgetType.CONTAINER and not self.children:
            raise ValueError("container widgets need at least one child")
        if self.type != WidgetType.CONTAINER and self.children:
            raise ValueError(f"{self.type.value} widgets cannot have children")
        return self


WidgetSchema.model_rebuild()


def _format_errors(exc: ValidationError) -> list[str]:
    messages = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err["loc"])
        messages.append(f"{path}: {err['msg']}" if path else err["msg"])
    return messages


def validate_plan(payload: Any) -> ValidationResult[Plan]:
    try:
        schema = PlanSchema.model_validate(payload)
    except ValidationError as e:
        return ValidationResult(valid=False, errors=_format_errors(e))

    warnings = []
    key_entities = list(schema.key_entities or [])
    search_query = schema.search_query
    if schema.data_source == DataSource.WEB_SEARCH and not search_query:
        search_query = " ".join(key_entities) or None
        warnings.append("searchQuery missing for web-search plan; using key entities")
    if schema.data_source == DataSource.INTERNAL_DATABASE and not schema.query_intent:
        warnings.append("queryIntent missing for internal-database plan")

    plan = Plan(
        widget_type=schema.widget_type,
        data_source=schema.data_source,
        data_structure=schema.data_structure,
        key_entities=key_entities,
        search_query=search_query,
        query_intent=schema.query_intent,
        reasoning=schema.reasoning,
    )
    return ValidationResult(valid=True, value=plan, warnings=warnings)


def validate_data(payload: Any) -> ValidationResult[DataResult]:
    try:
        schema = DataSchema.model_validate(payload)
    except ValidationError as e:
        return ValidationResult(valid=False, errors=_format_errors(e))

    return ValidationResult(
        valid=True,
        value=DataResult(data=schema.data, source=schema.source, confidence=schema.confidence),
    )


def _to_widget(schema: WidgetSchema, path: str, warnings: list[str]) -> Widget:
    update_interval = schema.update_interval
    if update_interval is not None and update_interval < MIN_UPDATE_INTERVAL_MS:
        where = f"{path}." if path else ""
        warnings.append(
            f"{where}updateInterval {update_interval} raised to {MIN_UPDATE_INTERVAL_MS}"
        )
        update_interval = MIN_UPDATE_INTERVAL_MS

    children = [
        _to_widget(child, f"{path}.children.{i}" if path else f"children.{i}", warnings)
        for i, child in enumerate(schema.children or [])
    ]
    return Widget(
        type=schema.type,
        data=schema.data,
        config=schema.config,
        interactions=[
            Interaction(type=i.type, effect=i.effect, target=i.target)
            for i in schema.interactions or []
        ],
        children=children,
        update_interval=update_interval,
        last_updated=schema.last_updated,
    )


def validate_widget(payload: Any) -> ValidationResult[Widget]:
    try:
        schema = WidgetSchema.model_validate(payload)
    except ValidationError as e:
        return ValidationResult(valid=False, errors=_format_errors(e))

    warnings: list[str] = []
    widget = _to_widget(schema, "", warnings)
    return ValidationResult(valid=True, value=widget, warnings=warnings)


def validate_multi_dataset(data: Any) -> list[str]:
    """Check ``{labels: [...], datasets: [{name, values}]}`` chart data for consistency."""
    if not isinstance(data, dict):
        return ["data must be an object"]

    issues = []
    labels = data.get("labels")
    datasets = data.get("datasets")
    if not isinstance(labels, list):
        issues.append("labels must be an array")
    if not isinstance(datasets, list) or not datasets:
        issues.append("datasets must be a non-empty array")
        return issues

    for i, dataset in enumerate(datasets):
        if not isinstance(dataset, dict):
            issues.append(f"datasets.{i} must be an object")
            continue
        if not isinstance(dataset.get("name"), str):
            issues.append(f"datasets.{i}.name must be a string")
        values = dataset.get("values")
        if not isinstance(values, list):
            issues.append(f"datasets.{i}.values must be an array")
            continue
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
            issues.append(f"datasets.{i}.values must contain only numbers")
        if isinstance(labels, list) and len(values) != len(labels):
            issues.append(
                f"datasets.{i}.values has {len(values)} entries but there are {len(labels)} labels"
            )
    return issues


def _present(data: dict, key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if isinstance(value, (str, list, dict)):
        return len(value) > 0
    return True


# widget type -> data keys that must all be present
REQUIRED_DATA_KEYS: dict[WidgetType, tuple[str, ...]] = {
    WidgetType.METRIC_CARD: ("label", "value"),
    WidgetType.METRIC_GRID: ("metrics",),
    WidgetType.LIST: ("items",),
    WidgetType.TIMELINE: ("events",),
    WidgetType.FORM: ("fields",),
    WidgetType.GALLERY: ("items",),
    WidgetType.PROFILE: ("name",),
    WidgetType.QUOTE: ("quote", "author"),
    WidgetType.RECIPE: ("ingredients", "steps"),
    WidgetType.WEATHER: ("location", "temperature"),
    WidgetType.STOCK_TICKER: ("symbol", "price"),
}


def check_widget_data(widget: Widget, path: str = "") -> list[str]:
    """
    Report widgets whose data is too thin to render anything useful.

    Issues are advisory: the caller logs them and still returns the widget.
    """
    where = path or widget.type.value
    data = widget.data if isinstance(widget.data, dict) else {}
    config = widget.config or {}
    issues = []

    if widget.type in REQUIRED_DATA_KEYS:
        for key in REQUIRED_DATA_KEYS[widget.type]:
            if not _present(data, key):
                issues.append(f"{where}: {widget.type.value} is missing data.{key}")
    elif widget.type == WidgetType.COMPARISON:
        if not (_present(data, "options") or _present(data, "items")):
            issues.append(f"{where}: comparison is missing data.options")
    elif widget.type == WidgetType.CHART:
        if not config.get("chartType"):
            issues.append(f"{where}: chart is missing config.chartType")
        if _present(data, "datasets"):
            issues.extend(f"{where}: {issue}" for issue in validate_multi_dataset(data))
        elif not _present(data, "points"):
            issues.append(f"{where}: chart is missing data.points or data.datasets")
    elif widget.is_container:
        if not config.get("variant"):
            issues.append(f"{where}: container is missing config.variant")
        if not widget.children:
            issues.append(f"{where}: container has no children")

    for i, child in enumerate(widget.children):
        child_path = f"{path}.children.{i}" if path else f"children.{i}"
        issues.extend(check_widget_data(child, child_path))
    return issues
