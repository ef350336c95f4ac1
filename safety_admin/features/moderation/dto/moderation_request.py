from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from safety_admin.features.moderation.domain.moderation_entity import ContentType, ModerationAction


class ModerationActionRequest(BaseModel):
    action: ModerationAction = Field(..., description="dismiss | warn | hide_content | ban_user")
    contentId: str = Field(..., min_length=1, description="Target post or comment id")
    contentType: ContentType = Field(default=ContentType.POST, description="post | comment")
    reason: Optional[str] = Field(default=None, max_length=500, description="Required except for dismiss")
    banDuration: int = Field(default=0, ge=0, description="0 = permanent (ban_user only)")
    banDurationUnit: str = Field(default='days', description="minutes | hours | days")
    notifyUser: bool = Field(default=True)

    @field_validator('reason')
    def blank_reason_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v

    @field_validator('banDurationUnit')
    def lowercase_unit(cls, v):
        return (v or 'days').strip().lower()

    @model_validator(mode='after')
    def reason_required_for_enforcement(self):
        if self.action != ModerationAction.DISMISS and not self.reason:
            raise ValueError(f"reason is required for action '{self.action.value}'")
        return self


class ContentStatusChangeRequest(BaseModel):
    """Admin restore or soft delete of a single post or comment."""
    contentId: str = Field(..., min_length=1)
    contentType: ContentType = Field(default=ContentType.POST, description="post | comment")
    reason: str = Field(..., min_length=10, max_length=500)
    notifyUser: bool = Field(default=True)

    @field_validator('reason', mode='before')
    def strip_reason(cls, v):
        return v.strip() if isinstance(v, str) else v
