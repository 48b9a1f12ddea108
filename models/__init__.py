"""
Models package for pipeline value records.
"""

from .agent_result import AgentEvent, AgentResult
from .generation import (
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

__all__ = [
    "AgentEvent",
    "AgentResult",
    "Confidence",
    "DataResult",
    "DataSource",
    "DataStructure",
    "Interaction",
    "InteractionType",
    "Plan",
    "Widget",
    "WidgetType",
]
