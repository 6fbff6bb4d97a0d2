from pathlib import Path
from typing import Dict, Optional

from pydantic import Field, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import (
    DotEnvSettingsSource,
    EnvSettingsSource,
    JsonConfigSettingsSource,
)

from agentloop.domain.policy import ErrorPolicy, RetryPolicy
from agentloop.domain.token_budget import BudgetStrategy, TokenBudget
from agentloop.engine.disclosure import DisclosureOptions
from agentloop.processors.sample import SampleStrategy
from agentloop.processors.truncate import DEFAULT_MARKER

DEFAULT_CONFIG_PATH = Path(".agentloop") / "config.json"


class AgentConfig(BaseSettings):
    """
    Runtime options for one agent, loaded from environment variables, .env, and JSON.
    """

    max_iterations: PositiveInt = Field(
        default=10, description="Iteration ceiling for one invocation."
    )
    tool_timeout_ms: PositiveInt = Field(
        default=30000, description="Per tool call timeout in milliseconds."
    )
    on_error: ErrorPolicy = Field(
        default=ErrorPolicy.CONTINUE, description="Tool error policy."
    )
    token_budget: Optional[PositiveInt] = Field(
        default=None, description="Cumulative token limit for one invocation."
    )
    budget_strategy: BudgetStrategy = Field(
        default=BudgetStrategy.WARN, description="Action when the budget is crossed."
    )
    warn_threshold: float = Field(
        default=0.8, gt=0.0, le=1.0, description="Fraction of the budget that warns."
    )
    truncate: Optional[PositiveInt] = Field(
        default=None, description="Maximum characters, items or keys per tool result."
    )
    truncate_marker: str = Field(
        default=DEFAULT_MARKER, description="Marker appended to truncated data."
    )
    summarize: bool = Field(
        default=False, description="Summarize structured tool results."
    )
    sample: Optional[PositiveInt] = Field(
        default=None, description="Keep this many items of list tool results."
    )
    sample_strategy: SampleStrategy = Field(
        default=SampleStrategy.FIRST, description="How sampled items are chosen."
    )
    window_size: Optional[PositiveInt] = Field(
        default=None, description="Iterations sent to the provider each turn."
    )
    skip_small: bool = Field(
        default=True, description="Leave results already under the truncate size alone."
    )
    context_token_limit: Optional[PositiveInt] = Field(
        default=None, description="Estimated tokens of history sent to the provider."
    )
    max_tool_concurrency: PositiveInt = Field(
        default=4, description="Tool calls dispatched concurrently per iteration."
    )
    tool_max_retries: int = Field(
        default=0, ge=0, description="Retries for transient tool failures."
    )
    tool_retry_wait_seconds: float = Field(
        default=0.0, ge=0.0, description="Delay between tool retries."
    )
    client_token_limits: Dict[str, PositiveInt] = Field(
        default_factory=dict, description="Context window size per client id."
    )

    model_config = SettingsConfigDict(
        env_prefix="AGENTLOOP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="forbid",
    )

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AgentConfig":
        """
        Loads configuration from a JSON file when present.

        Args:
            path: Optional override path for the JSON config file.

        Returns:
            A validated configuration object.
        """
        config_path = path or DEFAULT_CONFIG_PATH
        if not config_path.exists():
            return cls()

        json_source = JsonConfigSettingsSource(cls, json_file=config_path)
        dotenv_source = DotEnvSettingsSource(cls)
        env_source = EnvSettingsSource(cls)
        merged: dict[str, object] = {}
        merged.update(json_source())
        merged.update(dotenv_source())
        merged.update(env_source())
        return cls.model_validate(merged)

    def token_budget_config(self) -> Optional[TokenBudget]:
        """
        Returns the token budget, or None when no limit is configured.
        """
        if self.token_budget is None:
            return None
        return TokenBudget(
            limit=self.token_budget,
            strategy=self.budget_strategy,
            warn_threshold=self.warn_threshold,
        )

    def disclosure_options(self) -> DisclosureOptions:
        """Returns the progressive disclosure settings."""

        return DisclosureOptions(
            truncate=self.truncate,
            truncate_marker=self.truncate_marker,
            summarize=self.summarize,
            sample=self.sample,
            sample_strategy=self.sample_strategy,
            skip_small=self.skip_small,
            window_size=self.window_size,
            context_token_limit=self.context_token_limit,
        )

    def retry_policy(self) -> RetryPolicy:
        """Returns the retry policy for transient tool failures."""

        return RetryPolicy(
            max_retries=self.tool_max_retries,
            wait_seconds=self.tool_retry_wait_seconds,
        )

    def get_client_token_limit(self, client: str) -> Optional[int]:
        """Returns the configured context limit for ``client`` if any."""

        return self.client_token_limits.get(client)
