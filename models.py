from pydantic import BaseModel
from typing import Optional, Literal

from services.models import Topic, TopicsStatus

SessionState = Literal["idle", "requesting"]

class AnalyzeRequest(BaseModel):
    text: Optional[str] = None

class SessionResponse(BaseModel):
    session_id: str
    state: SessionState
    generation: int
    pending_generation: Optional[int] = None
    result_generation: Optional[int] = None
    has_result: bool
    error: Optional[str] = None
    topics_status: TopicsStatus
    topics_error: Optional[str] = None
    text_preview: str = ""
    created_at: str
    archived: bool = False

class TopicsResponse(BaseModel):
    status: TopicsStatus
    generation: Optional[int] = None
    error: Optional[str] = None
    topics: list[Topic]

class SampleResponse(BaseModel):
    text: str
    comment_count: int
