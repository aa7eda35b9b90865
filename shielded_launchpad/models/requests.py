"""Input schemas for launchpad operations"""
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from shielded_launchpad.allocation import CURRENCY_DECIMALS, MAX_CONTRIBUTION, TOKEN_DECIMALS, parse_units
from shielded_launchpad.errors import LaunchpadError

ADDRESS_PATTERN = r'^0x[a-fA-F0-9]{40}$'

def _check_units(value: str, decimals: int) -> str:
    try:
        parse_units(value, decimals)
    except LaunchpadError as e:
        raise ValueError(str(e))
    return value.strip()

class ProjectCreate(BaseModel):
    """
    Fields of a new project.

    Money fields are decimal strings. Prices and contribution limits use
    stablecoin precision, supply figures use token precision.
    """
    name: str = Field(..., min_length=1, max_length=255)
    symbol: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    token_address: Optional[str] = Field(None, pattern=ADDRESS_PATTERN)
    price_per_token: str
    total_supply: str
    allocation: str
    start_time: datetime
    end_time: datetime
    min_contribution: str
    max_contribution: str
    privacy_pool_address: str = Field(..., pattern=ADDRESS_PATTERN)

    @field_validator('price_per_token', 'min_contribution', 'max_contribution')
    @classmethod
    def check_currency_amount(cls, value: str) -> str:
        return _check_units(value, CURRENCY_DECIMALS)

    @field_validator('total_supply', 'allocation')
    @classmethod
    def check_token_amount(cls, value: str) -> str:
        return _check_units(value, TOKEN_DECIMALS)

    @field_validator('start_time', 'end_time')
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    @model_validator(mode='after')
    def check_consistency(self) -> 'ProjectCreate':
        if parse_units(self.price_per_token, CURRENCY_DECIMALS) == 0:
            raise ValueError("price_per_token must be greater than zero")
        if parse_units(self.min_contribution, CURRENCY_DECIMALS) > parse_units(self.max_contribution, CURRENCY_DECIMALS):
            raise ValueError("min_contribution must not exceed max_contribution")
        if parse_units(self.max_contribution, CURRENCY_DECIMALS) > parse_units(MAX_CONTRIBUTION, CURRENCY_DECIMALS):
            raise ValueError(f"max_contribution must not exceed {MAX_CONTRIBUTION}")
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self
