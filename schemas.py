"""
Pydantic schemas for API requests and responses.
"""

from pydantic import BaseModel, EmailStr, Field
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional, Dict, Union

class ErrorResponse(BaseModel):
    error: str
    message: Optional[str] = None

class CamelModel(BaseModel):
    """Accepts camelCase keys from the web client as well as snake_case."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

# Profile Schemas
class ProfileData(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    preferred_name: Optional[str] = None
    linked_in_profile: Optional[str] = None
    current_location: Optional[str] = None
    nationality: Optional[str] = None
    target_study_level: Optional[str] = None
    language_proficiency: Optional[List[Dict[str, Any]]] = None
    goal: Optional[str] = None
    desired_field: Optional[str] = None
    education: Optional[List[Dict[str, Any]]] = None
    career_goals: Optional[Dict[str, Any]] = None
    skills: Optional[List[str]] = None
    preferences: Optional[Dict[str, Any]] = None
    documents: Optional[Dict[str, Any]] = None
    vector_store_id: Optional[str] = None
    profile_file_id: Optional[str] = None

class ProfileCreateRequest(CamelModel):
    user_id: Optional[str] = None
    profile_data: ProfileData = Field(default_factory=ProfileData)

class GuestConversionRequest(CamelModel):
    user_id: Optional[str] = None
    profile_data: ProfileData = Field(default_factory=ProfileData)
    pathways: List[Dict[str, Any]] = []
    programs_by_pathway: Dict[str, List[Dict[str, Any]]] = {}

# Auth Schemas
class SignupRequest(CamelModel):
    email: EmailStr
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class ResetPasswordRequest(BaseModel):
    email: EmailStr

# Conversation Schemas
class ConversationCreate(BaseModel):
    title: str = "New Conversation"

class ConversationUpdate(BaseModel):
    title: str

class ConversationResponse(BaseModel):
    id: str
    user_id: str
    title: Optional[str] = None
    created_at: Any = None
    updated_at: Any = None

    class Config:
        from_attributes = True

class MessageCreate(BaseModel):
    message_content: Any
    role: str = "user"

class MessageResponse(BaseModel):
    id: str
    conversation_id: str
    role: str
    message_content: Any
    created_at: Any = None

    class Config:
        from_attributes = True

class TitleRequest(CamelModel):
    message_content: str

# Streaming relay
class TurnRequest(BaseModel):
    messages: List[Dict[str, Any]]
    tools: List[Dict[str, Any]] = []
    previous_response_id: Optional[str] = None

# Application plan
class ChecklistTask(BaseModel):
    title: str
    description: str = ""
    due_date: Optional[str] = None

class TimelineEvent(BaseModel):
    label: str
    target_date: str

class ApplicationPlan(BaseModel):
    checklist: List[ChecklistTask] = []
    timeline: List[TimelineEvent] = []

class CreateApplicationPlanRequest(BaseModel):
    recommendation_id: Optional[str] = None
    previous_response_id: Optional[str] = None

class SaveApplicationPlanRequest(BaseModel):
    recommendation_id: Optional[str] = None
    plan: Optional[ApplicationPlan] = None
    previous_response_id: Optional[str] = None

class ApplicationStateRequest(BaseModel):
    application_id: str

class UpdateApplicationTaskRequest(BaseModel):
    task_id: str
    updates: Dict[str, Any] = {}

class CreateApplicationTaskRequest(BaseModel):
    application_id: str
    title: str
    description: str = ""
    due_date: Optional[str] = None
    sort_order: Optional[int] = None

class DeleteApplicationTaskRequest(BaseModel):
    task_id: str

class UpdateApplicationTimelineRequest(BaseModel):
    application_id: str
    timeline: List[TimelineEvent]

# Pathways and recommendations
class RangeValue(BaseModel):
    min: float = 0
    max: float = 0

class PathwayCreate(BaseModel):
    title: str
    qualification_type: str
    field_of_study: str
    budget_range_usd: Union[RangeValue, Dict[str, Any]]
    duration_months: Union[RangeValue, Dict[str, Any]]
    alignment_rationale: str
    subfields: List[str] = []
    target_regions: List[str] = []
    alternatives: List[str] = []
    query_string: Optional[str] = None

class Scholarship(BaseModel):
    name: str = "Unnamed Scholarship"
    amount: Optional[str] = None
    eligibility: Optional[str] = None

class ProgramIn(BaseModel):
    name: str
    institution: str
    degree_type: str
    field_of_study: str
    description: str
    cost_per_year: float
    duration: int
    location: str
    start_date: str
    application_deadline: str
    requirements: List[str]
    highlights: List[str]
    page_link: str
    match_score: float
    match_rationale: Union[Dict[str, Any], str]
    page_links: List[str] = []
    scholarships: List[Scholarship] = []
    is_favorite: bool = False
    pathway_id: Optional[str] = None

class CreateRecommendationRequest(BaseModel):
    program: ProgramIn

class UpdateRecommendationRequest(BaseModel):
    recommendation_id: Optional[str] = None
    program: Optional[Dict[str, Any]] = None
    scholarships: Optional[List[Scholarship]] = None
    recommendation: Optional[Dict[str, Any]] = None
    files: Optional[List[Dict[str, Any]]] = None

class PathwayGenerateRequest(CamelModel):
    previous_response_id: Optional[str] = None
    feedback_context: List[Dict[str, Any]] = []

class PathwayDeleteRequest(BaseModel):
    feedback: Optional[Dict[str, Any]] = None

class ProgramRerunRequest(CamelModel):
    previous_response_id: Optional[str] = None
    pathway_id: Optional[str] = None

class RecommendationFeedbackRequest(BaseModel):
    reason: Optional[str] = None
    negative: bool = True
    data: Dict[str, Any] = {}

# Vector stores
class CreateStoreRequest(BaseModel):
    name: str = "Default store"

class VectorStoreFileRequest(CamelModel):
    vector_store_id: str
    file_id: str

class VectorStoreBatchRequest(CamelModel):
    vector_store_id: str
    file_ids: List[str]

class FileObject(BaseModel):
    name: str
    content: str  # base64

class UploadFileRequest(CamelModel):
    file_object: FileObject

class ConversationFileRequest(BaseModel):
    conversation_id: str
    messages: List[Dict[str, Any]] = []
