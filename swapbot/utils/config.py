"""
Configuration loading for the swap bot.

Settings come from an optional ``config.yaml`` (path overridable through
``CONFIG_PATH``) and from the environment, which wins over the YAML file.
Keys are the upper-cased field names of :class:`BotConfig` in the
environment and the lower-cased names in YAML.

Only the values the scheduler needs up front are validated here. Router and
token addresses and the swap amount are checked when a cycle starts.
"""

from __future__ import annotations

import os
import re
from typing import Any, Dict, List, Literal, Mapping, Optional

import yaml  # type: ignore
from pydantic import BaseModel, Field, NonNegativeFloat, NonNegativeInt, PositiveFloat, PositiveInt, field_validator

from swapbot.enums import DirectionCommit

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
MONAD_TESTNET_CHAIN_ID = 10143
_CHAT_ID_RE = re.compile(r"^(-?\d+|@[A-Za-z][A-Za-z0-9_]{3,})$")


class BotConfig(BaseModel):
    rpc_urls: List[str] = Field(default_factory=lambda: ["https://testnet-rpc.monad.xyz"])
    rpc_timeout_secs: PositiveFloat = 30.0
    rpc_retries: PositiveInt = 3
    rpc_retry_backoff_secs: NonNegativeFloat = 0.4
    chain_id: PositiveInt = MONAD_TESTNET_CHAIN_ID
    private_key: str = Field(default="", repr=False)

    router_address: str = ""
    token_address: str = ""
    native_address: str = ZERO_ADDRESS
    asset_label: str = "TOKEN"
    explorer_url: str = "https://testnet.monadexplorer.com"

    swap_amount: str = "0.01"
    interval_secs: PositiveInt = 30
    duration_minutes: PositiveInt = 10
    deadline_secs: PositiveInt = 20 * 60
    min_output: NonNegativeInt = 0
    confirmation_timeout_secs: PositiveFloat = 120.0
    direction_commit: DirectionCommit = DirectionCommit.CONFIRMED

    # gas: auto | legacy | 1559
    gas_mode: Literal["auto", "legacy", "1559"] = "auto"
    gas_limit_multiplier: PositiveFloat = 1.20
    default_gas_limit: PositiveInt = 350_000
    priority_fee_gwei: NonNegativeFloat = 1.5
    max_fee_multiplier: PositiveFloat = 2.0

    telegram_token: Optional[str] = Field(default=None, repr=False)
    telegram_chat_id: Optional[str] = None
    log_telegram_status: bool = True

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_dir: Optional[str] = None
    log_max_bytes: PositiveInt = 1_048_576
    log_backup_count: NonNegativeInt = 3

    @field_validator("rpc_urls", mode="before")
    @classmethod
    def _split_rpc_urls(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, (list, tuple)):
            urls = [str(u).strip().rstrip("/") for u in v if str(u).strip()]
            if not urls:
                raise ValueError("at least one RPC URL is required")
            return urls
        return v

    @field_validator("swap_amount", "telegram_chat_id", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> Any:
        # YAML turns 0.01 into a float; keep the user's decimal text instead
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("telegram_chat_id")
    @classmethod
    def _check_chat_id(cls, v: Optional[str]) -> Optional[str]:
        # numeric chat id (groups are negative) or a public @channelusername
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not _CHAT_ID_RE.match(v):
            raise ValueError(f"telegram chat id must be numeric or @channelname, got {v!r}")
        return v

    @property
    def interval_ms(self) -> int:
        return self.interval_secs * 1000

    @property
    def duration_ms(self) -> int:
        return self.duration_minutes * 60 * 1000


def load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load raw settings from ``config.yaml``.

    :returns: A dictionary of settings. A missing file quietly yields an
        empty dictionary.
    """
    config_path = path or os.getenv("CONFIG_PATH") or os.path.join(os.getcwd(), "config.yaml")
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{config_path} must contain a mapping at top level")
        return {str(k).lower(): v for k, v in data.items()}
    return {}


def load_bot_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None,
                    **overrides: Any) -> BotConfig:
    """Build a validated :class:`BotConfig` from YAML, environment and overrides.

    Raises :class:`pydantic.ValidationError` when a value does not parse.
    """
    env = os.environ if environ is None else environ
    data = load_config(path)
    for name in BotConfig.model_fields:
        value = env.get(name.upper())
        if value is not None and value.strip() != "":
            data[name] = value.strip()
    data.update({k: v for k, v in overrides.items() if v is not None})
    return BotConfig.model_validate(data)
