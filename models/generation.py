"""
Value records exchanged between the generation phases.

Plan, DataResult and Widget are immutable: a phase receives its input by
value and returns a new record. Python attributes are snake_case; the wire
format (events, HTTP, prompts) is camelCase, produced by ``to_dict``.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class WidgetType(str, Enum):
    METRIC_CARD = "metric-card"
    METRIC_GRID = "metric-grid"
    LIST = "list"
    COMPARISON = "comparison"
    CHART = "chart"
    TIMELINE = "timeline"
    FORM = "form"
    GALLERY = "gallery"
    PROFILE = "profile"
    CONTAINER = "container"
    QUOTE = "quote"
    RECIPE = "recipe"
    WEATHER = "weather"
    STOCK_TICKER = "stock-ticker"


class DataSource(str, Enum):
    INTERNAL_DATABASE = "internal-database"
    WEB_SEARCH = "web-search"
    SYNTHETIC_EXAMPLE = "synthetic-example"


class DataStructure(str, Enum):
    SINGLE_VALUE = "single-value"
    LIST = "list"
    COMPARISON = "comparison"
    TIMESERIES = "timeseries"
    GRID = "grid"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class InteractionType(str, Enum):
    HOVER = "hover"
    CLICK = "click"
    SLIDER = "slider"
    TOGGLE = "toggle"
    FILTER = "filter"
    SORT = "sort"


# Names used by earlier prompt versions, still accepted on input.
LEGACY_DATA_SOURCES = {
    "mock-database": DataSource.INTERNAL_DATABASE,
    "example-data": DataSource.SYNTHETIC_EXAMPLE,
}

MIN_UPDATE_INTERVAL_MS = 5000


def coerce_data_source(value: "DataSource | str | None") -> DataSource | None:
    """Map a data mode string (current or legacy name) to a DataSource."""
    if value is None or value == "":
        return None
    if isinstance(value, DataSource):
        return value
    if value in LEGACY_DATA_SOURCES:
        return LEGACY_DATA_SOURCES[value]
    return DataSource(value)


@dataclass(frozen=True)
class Plan:
    widget_type: WidgetType
    data_source: DataSource
    data_structure: DataStructure
    key_entities: list[str] = field(default_factory=list)
    search_query: str | None = None
    query_intent: str | None = None
    reasoning: str | None = None

    def with_data_source(self, data_source: DataSource) -> "Plan":
        return replace(self, data_source=data_source)

    def to_dict(self) -> dict[str, Any]:
        return {
            "widgetType": self.widget_type.value,
            "dataSource": self.data_source.value,
            "searchQuery": self.search_query,
            "queryIntent": self.query_intent,
            "dataStructure": self.data_structure.value,
            "keyEntities": list(self.key_entities),
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class DataResult:
    data: Any
    source: str | None
    confidence: Confidence

    @classmethod
    def empty(cls) -> "DataResult":
        """The low-confidence result used when acquisition fails."""
        return cls(data={}, source=None, confidence=Confidence.LOW)

    @property
    def field_count(self) -> int:
        return len(self.data) if isinstance(self.data, dict) else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": self.data,
            "source": self.source,
            "confidence": self.confidence.value,
        }


@dataclass(frozen=True)
class Interaction:
    type: InteractionType
    effect: str
    target: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type.value, "effect": self.effect}
        if self.target is not None:
            out["target"] = self.target
        return out


@dataclass(frozen=True)
class Widget:
    type: WidgetType
    data: Any = None
    config: dict[str, Any] | None = None
    interactions: list[Interaction] = field(default_factory=list)
    children: list["Widget"] = field(default_factory=list)
    update_interval: int | None = None  # ms, presence means "refresh me"
    last_updated: str | None = None  # ISO timestamp of the last data refresh

    @property
    def is_container(self) -> bool:
        return self.type == WidgetType.CONTAINER

    @property
    def is_live(self) -> bool:
        return self.update_interval is not None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type.value}
        if self.data is not None:
            out["data"] = self.data
        if self.config is not None:
            out["config"] = self.config
        if self.interactions:
            out["interactions"] = [i.to_dict() for i in self.interactions]
        if self.children:
            out["children"] = [c.to_dict() for c in self.children]
        if self.update_interval is not None:
            out["updateInterval"] = self.update_interval
        if self.last_updated is not None:
            out["lastUpdated"] = self.last_updated
        return out
