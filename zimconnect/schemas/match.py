from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from zimconnect.schemas.profile import CandidateProfile

class LikeResponse(BaseModel):
    id: str
    liker_id: str
    liked_id: str
    created_at: datetime

    model_config = {"from_attributes": True}

class LikedProfileItem(BaseModel):
    like_id: str
    liked_id: str
    created_at: datetime
    liked_profile: CandidateProfile

class MatchResponse(BaseModel):
    id: str
    user1_id: str
    user2_id: str
    created_at: datetime

    model_config = {"from_attributes": True}

class MessageCreate(BaseModel):
    content: str = Field(min_length=1)

class MessageResponse(BaseModel):
    id: str
    match_id: str
    sender_id: str
    content: str
    created_at: datetime
    read_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

class MatchListItem(BaseModel):
    id: str
    user1_id: str
    user2_id: str
    created_at: datetime
    other_user_id: str
    other_profile: Optional[CandidateProfile] = None
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0

class CountResponse(BaseModel):
    count: int
