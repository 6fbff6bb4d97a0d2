"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from agentloop.config import AgentConfig
from agentloop.config_provider import ConfigProvider
from agentloop.domain.policy import ErrorPolicy
from agentloop.domain.token_budget import BudgetStrategy
from agentloop.processors.sample import SampleStrategy


def test_config_load_defaults(tmp_path: Path) -> None:
    """Uses default values when the config file is missing."""
    config = AgentConfig.load(path=tmp_path / "missing.json")

    assert config.max_iterations == 10
    assert config.tool_timeout_ms == 30000
    assert config.on_error == ErrorPolicy.CONTINUE
    assert config.token_budget_config() is None
    assert config.retry_policy().max_attempts == 1
    assert not config.disclosure_options().processes_results


def test_config_load_from_file(tmp_path: Path) -> None:
    """Loads configuration values from JSON when present."""
    config_path = tmp_path / "config.json"
    config_path.write_text(
        """
        {
          "max_iterations": 4,
          "on_error": "halt",
          "token_budget": 5000,
          "budget_strategy": "halt",
          "truncate": 200,
          "sample": 5,
          "sample_strategy": "distributed",
          "window_size": 3,
          "tool_max_retries": 2,
          "client_token_limits": {"openai:gpt-4o": 128000}
        }
        """,
        encoding="utf-8",
    )

    config = AgentConfig.load(path=config_path)

    assert config.max_iterations == 4
    assert config.on_error == ErrorPolicy.HALT
    budget = config.token_budget_config()
    assert budget.limit == 5000
    assert budget.strategy == BudgetStrategy.HALT
    options = config.disclosure_options()
    assert options.truncate == 200
    assert options.sample_strategy == SampleStrategy.DISTRIBUTED
    assert options.window_size == 3
    assert config.retry_policy().max_attempts == 3
    assert config.get_client_token_limit("openai:gpt-4o") == 128000
    assert config.get_client_token_limit("mock:test") is None


def test_environment_overrides_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Environment variables win over the JSON file."""
    config_path = tmp_path / "config.json"
    config_path.write_text('{"max_iterations": 4}', encoding="utf-8")
    monkeypatch.setenv("AGENTLOOP_MAX_ITERATIONS", "7")

    assert AgentConfig.load(path=config_path).max_iterations == 7


def test_config_provider_applies_overrides(tmp_path: Path) -> None:
    """Loads configuration via the provider with field overrides."""
    config_path = tmp_path / "config.json"
    config_path.write_text('{"max_iterations": 4}', encoding="utf-8")

    config = ConfigProvider(path=config_path, summarize=True).load()

    assert config.max_iterations == 4
    assert config.summarize is True


@pytest.mark.parametrize(
    "field,value",
    [
        ("max_iterations", 0),
        ("truncate", -1),
        ("warn_threshold", 1.5),
        ("on_error", "explode"),
        ("sample_strategy", "random"),
        ("unknown_option", 1),
    ],
)
def test_invalid_values_fail_fast(field: str, value: object) -> None:
    """Invalid options are rejected at load time."""
    with pytest.raises(ValidationError):
        AgentConfig(**{field: value})
