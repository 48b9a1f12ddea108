"""FastAPI dependencies for orchestrator access."""


def get_orchestrator():
    """Dependency to get orchestrator instance (singleton pattern)."""
    from orchestrator.core import WidgetOrchestrator

    if not hasattr(get_orchestrator, "_instance"):
        get_orchestrator._instance = WidgetOrchestrator()
    return get_orchestrator._instance
