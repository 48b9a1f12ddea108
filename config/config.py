import os
import shutil
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv


class DataMode(Enum):
    """User-selectable data modes (override the planner's data source)."""
    INTERNAL_DATABASE = "internal-database"
    WEB_SEARCH = "web-search"
    SYNTHETIC_EXAMPLE = "synthetic-example"


class Config:
    """Configuration management for the widget generation service."""

    def __init__(self):
        """Initialize configuration with environment variables."""
        env_path = Path(__file__).parent.parent / '.env'
        if env_path.exists():
            load_dotenv(dotenv_path=env_path)

        # External agent
        self.AGENT_BINARY = os.getenv('AGENT_BINARY', 'cursor-agent')
        self.CURSOR_API_KEY = os.getenv('CURSOR_API_KEY')
        self.DEFAULT_MODEL = os.getenv('CURSOR_MODEL', 'composer-1')
        self.AGENT_TIMEOUT_SECONDS = float(os.getenv('AGENT_TIMEOUT_SECONDS', '300'))

        # Diagnostics
        self.AGENT_DEBUG = os.getenv('AGENT_DEBUG', 'false').strip().lower() in {'true', '1'}

        # Data sources
        self.INTERNAL_DATABASE_PATH = os.getenv('INTERNAL_DATABASE_PATH')
        self.PIPELINE_SETTINGS_PATH = os.getenv('PIPELINE_SETTINGS_PATH')

    def validate(self) -> list[str]:
        """
        Check the configuration and return a list of problems (empty when usable).

        A missing API key is not fatal: the agent CLI may already be logged in.
        """
        problems = []
        if self.AGENT_TIMEOUT_SECONDS <= 0:
            problems.append("AGENT_TIMEOUT_SECONDS must be positive")
        if not os.path.isabs(self.AGENT_BINARY) and shutil.which(self.AGENT_BINARY) is None:
            problems.append(f"Agent binary '{self.AGENT_BINARY}' was not found on PATH")
        if self.INTERNAL_DATABASE_PATH and not Path(self.INTERNAL_DATABASE_PATH).exists():
            problems.append(f"INTERNAL_DATABASE_PATH does not exist: {self.INTERNAL_DATABASE_PATH}")
        return problems

    def get_model_info(self) -> str:
        key_state = "api key set" if self.CURSOR_API_KEY else "no api key"
        return f"{self.AGENT_BINARY} ({self.DEFAULT_MODEL}, {key_state})"
