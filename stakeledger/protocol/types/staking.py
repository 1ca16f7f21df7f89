# MIT License
# Copyright (c) 2025 Hashborn

from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

from .amounts import UINT128_MAX, to_decimal
from .common import MalformedError

Amount = Annotated[int, Field(ge=0, le=UINT128_MAX)]


class AssetKind(str, Enum):
    TOKEN = "token"
    NATIVE_TOKEN = "native_token"


class AssetInfoRaw(BaseModel):
    """Raw asset identifier: a token contract (hex canonical address) or a native denom."""
    kind: AssetKind
    id: str

    def to_key(self) -> bytes:
        if self.kind == AssetKind.NATIVE_TOKEN:
            return self.id.encode("utf-8")
        try:
            return bytes.fromhex(self.id)
        except ValueError:
            raise MalformedError(f"Token address is not hex: {self.id!r}")


class AssetRaw(BaseModel):
    info: AssetInfoRaw
    amount: Amount


class Config(BaseModel):
    owner: str      # Hex canonical address
    rewarder: str   # Hex canonical address allowed to deposit rewards


class PoolInfo(BaseModel):
    staking_token: str                       # Hex canonical address
    pending_reward: Amount = 0               # Not distributed yet due to zero bonding
    total_bond_amount: Amount = 0
    reward_index: Decimal = Decimal(0)

    @field_validator("reward_index")
    @classmethod
    def _fixed_point(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("reward_index must be non-negative")
        return to_decimal(v)

    @field_serializer("reward_index", when_used="json")
    def _fixed_point_str(self, v: Decimal) -> str:
        return format(v, "f")


class RewardInfo(BaseModel):
    native_token: bool = False
    index: Decimal = Decimal(0)
    bond_amount: Amount = 0
    pending_reward: Amount = 0
    # Filled when reward rates change, so accrued rewards keep their old split
    pending_withdraw: List[AssetRaw] = Field(default_factory=list)

    @field_validator("index")
    @classmethod
    def _fixed_point(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("index must be non-negative")
        return to_decimal(v)

    @field_serializer("index", when_used="json")
    def _fixed_point_str(self, v: Decimal) -> str:
        return format(v, "f")

    def is_empty(self) -> bool:
        return self.bond_amount == 0 and self.pending_reward == 0 and not self.pending_withdraw


class LockInfo(BaseModel):
    unlock_time: int    # Seconds since epoch
    amount: Amount


class UnbondResult(BaseModel):
    """Outcome of an unbond: paid out now, or queued until lock.unlock_time."""
    released: Amount = 0
    lock: Optional[LockInfo] = None
