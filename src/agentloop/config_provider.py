"""Helpers for constructing configuration instances."""

from pathlib import Path
from typing import Any, Optional

from agentloop.config import AgentConfig


class ConfigProvider:
    """
    Provides configuration instances without import-time side effects.

    Args:
        path: Optional override path for the JSON config file.
        overrides: Field values applied on top of the loaded configuration.
    """

    def __init__(self, path: Optional[Path] = None, **overrides: Any) -> None:
        self._path = path
        self._overrides = overrides

    def load(self) -> AgentConfig:
        """
        Loads a configuration instance using the configured path.

        Returns:
            A validated configuration object.
        """
        config = AgentConfig.load(self._path)
        if not self._overrides:
            return config
        values = config.model_dump()
        values.update(self._overrides)
        return AgentConfig.model_validate(values)
