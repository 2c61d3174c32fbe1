"""Request bodies for write endpoints (camelCase on the wire)."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UpdateHealthRequest(CamelModel):
    """POST /api/bosses body."""

    action: str = Field(..., description="Must be 'updateHealth'")
    boss_id: int | None = Field(None, alias="bossId")
    current_health: float | None = Field(None, alias="currentHealth")
    is_defeated: bool = Field(False, alias="isDefeated")
    signature: str | None = Field(None, description="Trade signature that caused the change")
    tx_type: str | None = Field(None, alias="txType")


class TradeCreateRequest(CamelModel):
    """POST /api/trades body: idempotent trade insert."""

    boss_id: int = Field(..., alias="bossId", gt=0)
    signature: str = Field(..., min_length=1, max_length=128)
    mint: str = Field(..., min_length=1, max_length=64)
    sol_amount: float = Field(..., alias="solAmount", ge=0)
    token_amount: float = Field(..., alias="tokenAmount", ge=0)
    tx_type: Literal["buy", "sell"] = Field(..., alias="txType")
    damage_dealt: float = Field(0.0, alias="damageDealt", ge=0)
    heal_applied: float = Field(0.0, alias="healApplied", ge=0)
    timestamp: str = Field(..., min_length=1)
    trader_address: str | None = Field(None, alias="traderAddress", max_length=64)

    @field_validator("tx_type", mode="before")
    @classmethod
    def _lower_tx_type(cls, v: object) -> object:
        return v.lower() if isinstance(v, str) else v


class GameActionRequest(CamelModel):
    """POST /api/game body."""

    action: str
    session_id: int | None = Field(None, alias="sessionId")
    damage_dealt: float = Field(0.0, alias="damageDealt", ge=0)
    heal_applied: float = Field(0.0, alias="healApplied", ge=0)
    new_boss_id: int | None = Field(None, alias="newBossId")
