from typing import Any, List, Optional
from pydantic import BaseModel, Field


class ApiResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Any = None


class CreateConversationRequest(BaseModel):
    # A user names the partner, a partner names the user
    partner_id: Optional[str] = None
    user_id: Optional[str] = None
    astrology_data: Optional[dict] = None


class RejectConversationRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RatingRequest(BaseModel):
    stars: Optional[int] = None
    feedback: Optional[str] = None
    satisfaction: Optional[str] = None


class EndConversationRequest(BaseModel):
    """Optional rating submitted together with the end request."""
    stars: Optional[int] = None
    feedback: Optional[str] = None
    satisfaction: Optional[str] = None

    def rating(self) -> Optional[dict]:
        if self.stars is None and not self.feedback and not self.satisfaction:
            return None
        return {"stars": self.stars, "feedback": self.feedback, "satisfaction": self.satisfaction}


class SendMessageRequest(BaseModel):
    content: Optional[str] = None
    message_type: str = "text"
    media_url: Optional[str] = None


class MarkReadRequest(BaseModel):
    message_ids: Optional[List[int]] = None


class PartnerStatusRequest(BaseModel):
    status: str
