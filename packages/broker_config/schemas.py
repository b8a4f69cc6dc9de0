"""Configuration schemas for the Broker Agent.

This module defines Pydantic models for agent configuration validation.
All configuration must be validated before use to ensure type safety.
"""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_SYSTEM_PROMPT = (
    "You're an expert financial analyst named AI Steam Search, developed by AI Steam Labs. "
    "Your task is to answer users' questions about a given company or companies, and about "
    "crypto coins. You do not have up-to-date information on the companies or coins, so you "
    "must call tools when answering users' questions. All stock data tools require a company "
    "ticker to be passed in as a parameter. If you do not know the ticker, use the web search "
    "tool to find it. When the user wants to buy a stock call purchase_stock, when the user "
    "wants to buy a crypto coin call purchase_coin. "
    "If users ask who you are, respond in the user's input language and explain that you are "
    "a conversational financial search assistant that integrates data from multiple sources "
    "and supports multi-round conversations."
)


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    OPENAI_COMPATIBLE = "openai_compatible"


class LLMConfig(BaseModel):
    """Configuration for the chat model used by the agent node."""

    provider: LLMProvider = Field(
        default=LLMProvider.OPENAI,
        description="LLM provider to use",
    )
    model_name: str = Field(
        default="gpt-4o-mini",
        description="Model name passed to the provider",
    )
    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=2.0,
        description="Sampling temperature",
    )
    max_tokens: Optional[int] = Field(
        default=None,
        gt=0,
        description="Maximum tokens in a completion (provider default if unset)",
    )
    base_url: Optional[str] = Field(
        default=None,
        description="Custom API base URL",
    )
    api_key_env_var: str = Field(
        default="OPENAI_API_KEY",
        description="Environment variable holding the API key",
    )

    @field_validator("model_name")
    @classmethod
    def validate_model_name(cls, v: str) -> str:
        """Validate model name is not empty."""
        if not v or not v.strip():
            raise ValueError("Model name cannot be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_base_url_for_compatible(self) -> "LLMConfig":
        """OpenAI-compatible providers need an explicit endpoint."""
        if self.provider == LLMProvider.OPENAI_COMPATIBLE and not self.base_url:
            raise ValueError("base_url is required for the openai_compatible provider")
        return self


class CheckpointConfig(BaseModel):
    """Checkpoint retention and execution limits.

    Checkpoints never expire unless a limit is configured here.
    """

    max_age_seconds: Optional[int] = Field(
        default=None,
        gt=0,
        description="Evict completed checkpoints older than this",
    )
    suspended_max_age_seconds: Optional[int] = Field(
        default=None,
        gt=0,
        description="Evict suspended checkpoints older than this (None keeps them forever)",
    )
    max_threads: Optional[int] = Field(
        default=None,
        gt=0,
        description="Keep at most this many threads, evicting the least recently updated",
    )
    recursion_limit: int = Field(
        default=25,
        gt=0,
        description="Maximum graph steps per invocation",
    )


class DataSourceConfig(BaseModel):
    """Settings for the market data collaborators."""

    coingecko_pro_api_key_env_var: str = Field(default="X_CG_PRO_API_KEY")
    coingecko_api_key_env_var: str = Field(default="X_CG_API_KEY")
    financial_datasets_api_key_env_var: str = Field(default="FINANCIAL_DATASETS_API_KEY")
    defillama_api_key_env_var: str = Field(default="X_LLAMA_API_KEY")
    tavily_api_key_env_var: str = Field(default="TAVILY_API_KEY")
    supported_coins_path: Optional[Path] = Field(
        default=None,
        description="JSON table of supported coins (bundled table if unset)",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout in seconds for data source requests",
    )
    default_vs_currency: str = Field(
        default="usd",
        description="Reference currency for coin quotes",
    )

    @field_validator("default_vs_currency")
    @classmethod
    def validate_vs_currency(cls, v: str) -> str:
        """Validate the reference currency is supported."""
        currency = v.strip().lower()
        supported = {"usd", "eur", "btc", "eth"}
        if currency not in supported:
            raise ValueError(f"Currency '{v}' not supported. Must be one of: {supported}")
        return currency


class BrokerConfig(BaseModel):
    """Complete agent configuration."""

    system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT,
        description="System instruction prepended to every model call",
    )
    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="Chat model configuration",
    )
    checkpoints: CheckpointConfig = Field(
        default_factory=CheckpointConfig,
        description="Checkpoint retention configuration",
    )
    data_sources: DataSourceConfig = Field(
        default_factory=DataSourceConfig,
        description="Market data collaborator configuration",
    )
    default_quantity: int = Field(
        default=1,
        gt=0,
        description="Quantity staged when a purchase request omits it",
    )

    @field_validator("system_prompt")
    @classmethod
    def validate_system_prompt(cls, v: str) -> str:
        """Validate system prompt is not empty."""
        if not v or not v.strip():
            raise ValueError("System prompt cannot be empty")
        return v.strip()
