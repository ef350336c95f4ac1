from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from safety_admin.features.appeals.domain.appeal_entity import AppealType, ReviewDecision
from safety_admin.features.moderation.domain.moderation_entity import ContentType


class SubmitAppealRequest(BaseModel):
    userId: str = Field(..., min_length=1)
    appealType: AppealType = Field(default=AppealType.BAN, description="ban | content")
    reason: str = Field(..., description="Why the decision should be reversed")
    contactEmail: Optional[str] = Field(default=None, max_length=254)
    contentType: Optional[ContentType] = Field(default=None)
    contentId: Optional[str] = Field(default=None)

    @field_validator('reason')
    def reason_length(cls, v):
        v = (v or '').strip()
        if not 10 <= len(v) <= 1000:
            raise ValueError('reason must be between 10 and 1000 characters')
        return v

    @field_validator('contactEmail', 'contentId')
    def empty_string_to_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v

    @model_validator(mode='after')
    def content_target_required(self):
        if self.appealType == AppealType.CONTENT:
            if not self.contentId:
                raise ValueError('contentId is required for content appeals')
            if self.contentType is None:
                self.contentType = ContentType.POST
        else:
            self.contentType = None
            self.contentId = None
        return self


class ReviewAppealRequest(BaseModel):
    action: ReviewDecision = Field(..., description="approve | reject")
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator('notes')
    def strip_notes(cls, v):
        if v is None:
            return None
        return v.strip() or None
