"""
Centralized configuration management for the token signal engine.

Configuration follows a 2-tier layout:

Tier 1: Code Defaults (settings.py)
- Default values for indicator periods, cache bounds and escalation gates
- Version controlled, visible in PRs

Tier 2: Environment Variables (.env)
- Can override any Tier 1 setting for local development or tuning
- Example: SIGNAL_CACHE_MAX_SIZE=5000

The static filter's tier table is deliberately NOT configurable here; it lives
in token_signals.signal_generation.thresholds as a single literal table.

This module uses pydantic-settings to manage configuration from environment
variables and .env files, providing a structured and validated way to
access settings throughout the application.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict


class IndicatorSettings(BaseSettings):
    """
    Periods used by the indicator engine.
    """
    model_config = SettingsConfigDict(env_prefix='INDICATOR_')

    MINIMUM_DATA_POINTS: int = 50  # Below this, no snapshot is produced at all
    OBV_ZSCORE_PERIOD: int = 20
    BOLLINGER_PERIOD: int = 20
    BOLLINGER_STD_DEV: float = 2.0
    ATR_PERIOD: int = 14
    ADX_PERIOD: int = 14
    RSI_PERIOD: int = 9


class SignalCacheSettings(BaseSettings):
    """
    Bounds for the in-memory technical analysis cache.
    """
    model_config = SettingsConfigDict(env_prefix='SIGNAL_CACHE_')

    MAX_SIZE: int = 1000
    EXPIRY_MS: int = 1000 * 60 * 60 * 24  # 24 hours


class SignalPipelineSettings(BaseSettings):
    """
    Configuration for the periodic signal pipeline.
    """
    model_config = SettingsConfigDict(env_prefix='SIGNAL_PIPELINE_')

    # Escalation gates (both must hold before the LLM stage runs)
    MIN_CONFLUENCE_SCORE: float = 0.2
    CONFLUENCE_REQUIRED: int = 2

    # Batch behaviour
    LOOKBACK_BARS: int = 100  # Latest bars fetched per token
    MAX_CONCURRENCY: int = 10  # Tokens evaluated at the same time


class Settings(BaseSettings):
    """
    Main settings object that aggregates all other settings.
    """
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    indicators: IndicatorSettings = IndicatorSettings()
    cache: SignalCacheSettings = SignalCacheSettings()
    pipeline: SignalPipelineSettings = SignalPipelineSettings()

    LOG_LEVEL: str = "INFO"


settings = Settings()
