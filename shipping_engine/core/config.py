"""
Shipping engine configuration

Carrier credentials default to empty strings so the engine imports cleanly
without them; a carrier with empty credentials fails at its first API call
with CarrierAuthFailure rather than at startup.
"""
import json
import logging
from typing import List, Union

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_ENABLED_CARRIERS = ["FEDEX", "UPS"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    ENVIRONMENT: str = "production"

    # FedEx
    FEDEX_CLIENT_ID: str = ""
    FEDEX_CLIENT_SECRET: str = ""
    FEDEX_ACCOUNT_NUMBER: str = ""
    FEDEX_USE_SANDBOX: bool = False

    # UPS
    UPS_CLIENT_ID: str = ""
    UPS_CLIENT_SECRET: str = ""
    UPS_ACCOUNT_NUMBER: str = ""
    UPS_USE_SANDBOX: bool = False

    # Carriers the factory will hand out - accepts JSON array or comma-separated string
    SHIPPING_ENABLED_CARRIERS: Union[str, List[str]] = DEFAULT_ENABLED_CARRIERS

    # Service codes each carrier may quote; empty means all of them
    FEDEX_ENABLED_SERVICES: Union[str, List[str]] = []
    UPS_ENABLED_SERVICES: Union[str, List[str]] = []

    @field_validator(
        "SHIPPING_ENABLED_CARRIERS", "FEDEX_ENABLED_SERVICES", "UPS_ENABLED_SERVICES", mode="before"
    )
    @classmethod
    def parse_code_list(cls, v, info: ValidationInfo):
        if isinstance(v, str):
            if not v.strip():
                return []
            if v.startswith("["):
                try:
                    v = json.loads(v)
                except json.JSONDecodeError:
                    logger.warning(f"{info.field_name} is not valid JSON: {v!r}")
                    v = v.strip("[]").split(",")
            else:
                v = v.split(",")
        return [str(code).strip().strip('"').upper() for code in v if str(code).strip()]

    # Rate shopping
    SHIPPING_RATE_DEADLINE_SECONDS: float = 3.0
    SHIPPING_RATE_QUOTE_TTL_MINUTES: int = 30
    # Percentage added to every carrier quote, e.g. 10 for +10%
    SHIPPING_RATE_MARKUP_PERCENT: float = 0.0

    # Carrier HTTP
    SHIPPING_HTTP_TIMEOUT_SECONDS: float = 10.0
    SHIPPING_LABEL_FORMAT: str = "PDF"

    # Caller-level retry of transient carrier failures
    SHIPPING_RETRY_MAX_ATTEMPTS: int = 3
    SHIPPING_RETRY_BASE_DELAY: float = 1.0
    SHIPPING_RETRY_MAX_DELAY: float = 10.0

    @field_validator("SHIPPING_RATE_DEADLINE_SECONDS", "SHIPPING_HTTP_TIMEOUT_SECONDS")
    @classmethod
    def validate_positive_seconds(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("SHIPPING_RATE_MARKUP_PERCENT")
    @classmethod
    def validate_markup(cls, v):
        if v < 0:
            raise ValueError("cannot be negative")
        return v

    @property
    def is_sandbox(self) -> bool:
        return self.ENVIRONMENT.lower() in ("development", "test", "sandbox")


settings = Settings()
