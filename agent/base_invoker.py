from abc import ABC, abstractmethod
from typing import Callable, Optional

from models.agent_result import AgentEvent, AgentResult

EventCallback = Callable[[AgentEvent], None]

SYSTEM_PROMPT_TEMPLATE = (
    "SYSTEM INSTRUCTIONS:\n{system_prompt}\n\n"
    "USER REQUEST:\n{prompt}\n\n"
    "IMPORTANT: Follow the SYSTEM INSTRUCTIONS exactly. Output only the requested "
    "format (JSON, code, etc.) without any additional explanation or commentary."
)


class BaseAgentInvoker(ABC):
    """
    Abstract base class for generative agent invokers.
    Every phase talks to the agent through this interface, so tests can swap in
    a scripted invoker without spawning processes.
    """

    def __init__(self, default_model: Optional[str] = None):
        self.default_model = default_model

    @abstractmethod
    def invoke(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        force: bool = True,
        on_event: Optional[EventCallback] = None,
    ) -> AgentResult:
        """
        Run the agent once and reduce its output to an AgentResult.

        Args:
            prompt: The user-level prompt
            system_prompt: Optional instructions wrapped around the prompt
            model: Model override (falls back to ``default_model``)
            force: Allow the agent to run tools without confirmation
            on_event: Called synchronously for each parsed stream event

        Returns:
            AgentResult; implementations never raise for agent failures
        """
        pass

    @staticmethod
    def compose_prompt(prompt: str, system_prompt: Optional[str] = None) -> str:
        """Fold the system instructions into the prompt text (the CLI has no separate slot)."""
        if not system_prompt:
            return prompt
        return SYSTEM_PROMPT_TEMPLATE.format(system_prompt=system_prompt, prompt=prompt)
