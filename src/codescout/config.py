"""Configuration management for codescout."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from codescout.exceptions import ConfigError

CODESCOUT_DIR = ".codescout"
CONFIG_FILE = "config.json"


class LLMConfig(BaseModel):
    """LLM provider configuration for the exploration agents."""

    provider: str = "anthropic"
    model: str = "claude-haiku-4-5"
    api_key_env: str = ""
    max_tokens: int = 16384
    temperature: float = 0.0
    base_url: str | None = None
    request_timeout_s: float = 120.0
    # USD per million tokens, used to fill UsageStats.cost
    input_cost_per_mtok: float = 0.0
    output_cost_per_mtok: float = 0.0
    cache_read_cost_per_mtok: float = 0.0
    cache_write_cost_per_mtok: float = 0.0

    @property
    def api_key(self) -> str | None:
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        env_map = {
            "openai": "OPENAI_API_KEY",
            "anthropic": "ANTHROPIC_API_KEY",
            "cerebras": "CEREBRAS_API_KEY",
        }
        env_var = env_map.get(self.provider, "")
        return os.environ.get(env_var)


class AgentConfig(BaseModel):
    """Per-query agent loop limits."""

    max_iterations: int = 15
    wrap_up_after: int = 6
    retry_wall_time_s: float = 30.0
    initial_backoff_s: float = 0.5
    max_empty_retries: int = 2
    max_finish_nudges: int = 2
    prefill_patterns: int = 6
    tool_timeout_s: float = 30.0


class ScannerConfig(BaseModel):
    """Relevance scanner and search backend settings."""

    max_files: int = 80
    generic_match_limit: int = 500
    sibling_source_files: int = 30
    high_score_marker: float = 50.0
    search_timeout_s: float = 8.0
    max_output_chars: int = 30000
    max_matches_per_file: int = 15
    rg_path: str = "~/.codescout/bin/rg"
    exclude_globs: list[str] = Field(
        default_factory=lambda: [
            "!node_modules",
            "!dist",
            "!build",
            "!.git",
            "!.codescout",
            "!*.lock",
            "!*.min.js",
            "!*.map",
            "!*.d.ts",
        ]
    )


class ResolverConfig(BaseModel):
    """Range resolution limits."""

    fallback_lines: int = 60
    max_lines_per_range: int = 160
    max_lines_per_file: int = 260
    merge_gap: int = 2
    max_read_lines: int = 800


class BudgetConfig(BaseModel):
    """Output token budget; ceilings scale with query count."""

    soft_max: int = 45_000
    hard_max: int = 60_000
    base: int = 18_000
    per_query: int = 9_000
    omitted_preview_limit: int = 40

    @model_validator(mode="after")
    def _check_order(self) -> "BudgetConfig":
        if self.soft_max > self.hard_max:
            raise ValueError("budget.soft_max must not exceed budget.hard_max")
        return self


class IntelConfig(BaseModel):
    """Symbol/reference service settings."""

    init_timeout_s: float = 10.0
    request_timeout_s: float = 8.0
    symbol_listing_limit: int = 60
    fallback_read_lines: int = 120
    references_limit: int = 80
    max_file_size_kb: int = 500


class ProjectConfig(BaseModel):
    """Full project configuration."""

    name: str = ""
    root_path: str = "."
    max_queries: int = 5
    llm: LLMConfig = Field(default_factory=LLMConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    intel: IntelConfig = Field(default_factory=IntelConfig)


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from `start` looking for a .codescout directory."""
    current = (start or Path.cwd()).resolve()
    while current != current.parent:
        if (current / CODESCOUT_DIR).is_dir():
            return current
        current = current.parent
    if (current / CODESCOUT_DIR).is_dir():
        return current
    return None


def get_codescout_dir(root: Path) -> Path:
    """Get the .codescout directory for a project root."""
    return root / CODESCOUT_DIR


def load_config(root: Path) -> ProjectConfig:
    """Load configuration from .codescout/config.json, or defaults.

    Raises:
        ConfigError: If the file exists but is not valid configuration JSON.
    """
    config_path = get_codescout_dir(root) / CONFIG_FILE
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
            return ProjectConfig(**data)
        except (json.JSONDecodeError, ValidationError, TypeError) as e:
            raise ConfigError(f"Invalid config at {config_path}: {e}") from e
    return ProjectConfig(name=root.name, root_path=str(root))


def save_config(root: Path, config: ProjectConfig) -> None:
    """Save configuration to .codescout/config.json."""
    cs_dir = get_codescout_dir(root)
    cs_dir.mkdir(parents=True, exist_ok=True)
    config_path = cs_dir / CONFIG_FILE
    config_path.write_text(json.dumps(config.model_dump(), indent=2))


def set_config_value(config: ProjectConfig, key: str, value: Any) -> ProjectConfig:
    """Set a nested config value using dot notation (e.g., 'budget.soft_max')."""
    parts = key.split(".")
    data = config.model_dump()
    target = data
    for part in parts[:-1]:
        if part not in target or not isinstance(target[part], dict):
            raise KeyError(f"Invalid config key: {key}")
        target = target[part]
    if parts[-1] not in target:
        raise KeyError(f"Invalid config key: {key}")
    target[parts[-1]] = value
    return ProjectConfig(**data)
