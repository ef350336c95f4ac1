from typing import Optional
from pydantic import BaseModel, Field, field_validator


class BanUserRequest(BaseModel):
    reason: str = Field(..., description="Reason for banning the user (5-500 characters)")
    banDuration: int = Field(default=0, ge=0, description="0 = permanent")
    banDurationUnit: str = Field(default='days', description="minutes | hours | days")

    @field_validator('reason')
    def strip_reason(cls, v):
        return (v or '').strip()

    @field_validator('banDurationUnit')
    def lowercase_unit(cls, v):
        return (v or 'days').strip().lower()


class UnbanUserRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500, description="Optional note for the audit log")
