"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Each rail receives its connection details explicitly from these models;
no rail reads a global token at call time.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class PixSettings(BaseModel):
    base_url: str = "http://localhost:3001"
    auth_token: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)  # pre-resolved tenant headers
    timeout: float = 15.0
    default_email: str = "cliente@totem.com.br"
    default_payer_name: str = "Cliente"


class PinpadSettings(BaseModel):
    base_url: str = "http://localhost:5000/api"
    charge_timeout: float = 60.0
    cancel_timeout: float = 60.0
    status_timeout: float = 10.0


class PollingSettings(BaseModel):
    interval: float = 3.0     # seconds between status checks
    timeout: float = 300.0    # PIX settlement window


class PaymentSettings(BaseSettings):
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    pix: PixSettings = Field(default_factory=PixSettings)
    pinpad: PinpadSettings = Field(default_factory=PinpadSettings)
    polling: PollingSettings = Field(default_factory=PollingSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
