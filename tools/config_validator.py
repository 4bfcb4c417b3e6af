"""
Configuration Validation Module

Validates app.yaml against Pydantic schemas.
Ensures config files are correct before system startup.

Usage:
    from tools.config_validator import validate_all_configs

    errors = validate_all_configs("config")
    if errors:
        for error in errors:
            print(f"ERROR: {error}")
        sys.exit(1)
"""
import logging
import os
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

APP_CONFIG_FILE = "app.yaml"


# ===== App Schema =====
class AppSection(BaseModel):
    """Run-level parameters"""
    name: str = Field(default="voltrader", min_length=1)
    risk_profile: Optional[str] = Field(default=None, description="Skip the menu when set (low|high)")

    @field_validator("risk_profile")
    @classmethod
    def validate_risk_profile(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        tag = v.strip().lower()
        if tag not in ("low", "high"):
            raise ValueError(f"risk_profile must be 'low' or 'high', got {v!r}")
        return tag


class LedgerConfig(BaseModel):
    """Simulated capital parameters"""
    total_capital: float = Field(default=100_000.0, gt=0, description="Starting capital USD")
    capital_guard_fraction: float = Field(default=0.9, gt=0, le=1, description="Stop opening past this allocation")


class MarketDataConfig(BaseModel):
    """Bitquery connector parameters"""
    base_url: str = Field(default="https://streaming.bitquery.io/graphql")
    api_key_env: str = Field(default="BITQUERY_API_KEY", min_length=1)
    timeout_seconds: float = Field(default=20.0, gt=0)
    max_retries: int = Field(default=3, ge=1, le=10)
    lookback_hours: int = Field(default=24, ge=1, le=24 * 30)
    top_n: int = Field(default=10, ge=1, le=100)
    request_delay_seconds: float = Field(default=0.1, ge=0)


class AIConfig(BaseModel):
    """Reasoning-service parameters"""
    provider: str = Field(default="gemini", pattern="^(gemini|openai|anthropic|mock)$")
    model: Optional[str] = None
    api_key_env: str = Field(default="GEMINI_API_KEY", min_length=1)
    timeout_seconds: float = Field(default=30.0, gt=0)
    temperature: float = Field(default=0.3, ge=0, le=2)
    max_tokens: int = Field(default=2000, gt=0)
    default_confidence: float = Field(default=0.7, ge=0, le=1)


class LoopConfig(BaseModel):
    """Post-cycle behaviour"""
    monitor_interval_seconds: float = Field(
        default=0.0, ge=0, description="Stop-loss/take-profit check period while resting (0 = off)"
    )


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    file: str = Field(default="logs/voltrader.log")
    audit_file: Optional[str] = None


class MonitoringConfig(BaseModel):
    metrics_enabled: bool = False
    metrics_port: int = Field(default=9100, gt=0, lt=65536)


class AppConfig(BaseModel):
    """Complete app.yaml schema"""
    app: AppSection = Field(default_factory=AppSection)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    market_data: MarketDataConfig = Field(default_factory=MarketDataConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    loop: LoopConfig = Field(default_factory=LoopConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    def secret(self, env_name: str) -> str:
        """Resolve a credential from the environment (empty if unset)."""
        return os.getenv(env_name, "")


def _read_yaml(path: Path) -> dict:
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def load_app_config(config_dir: Union[str, Path] = "config") -> AppConfig:
    """
    Load and validate app.yaml.

    A missing file yields the defaults.

    Raises:
        ValidationError: schema violations
        yaml.YAMLError: unparseable YAML
    """
    path = Path(config_dir) / APP_CONFIG_FILE
    if not path.exists():
        logger.warning(f"{path} not found, using default configuration")
        return AppConfig()
    return AppConfig.model_validate(_read_yaml(path))


def validate_all_configs(config_dir: Union[str, Path] = "config") -> List[str]:
    """
    Validate every config file in a directory.

    Returns:
        List of human-readable error strings (empty when valid)
    """
    errors: List[str] = []
    path = Path(config_dir) / APP_CONFIG_FILE
    if not path.exists():
        return errors

    try:
        data = _read_yaml(path)
    except yaml.YAMLError as e:
        return [f"{APP_CONFIG_FILE}: invalid YAML: {e}"]

    if not isinstance(data, dict):
        return [f"{APP_CONFIG_FILE}: top level must be a mapping"]

    try:
        AppConfig.model_validate(data)
    except ValidationError as e:
        for err in e.errors():
            location = ".".join(str(part) for part in err["loc"])
            errors.append(f"{APP_CONFIG_FILE}: {location}: {err['msg']}")

    return errors
