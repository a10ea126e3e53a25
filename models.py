from sqlalchemy import Column, Integer, String, Boolean, Float, ForeignKey, DateTime, Text, JSON
from sqlalchemy.orm import declarative_base, relationship
from datetime import datetime, timezone
import enum
import uuid

Base = declarative_base()

def new_id() -> str:
    return str(uuid.uuid4())

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

# Enums
class RoleEnum(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    DEVELOPER = "developer"

class TaskStatusEnum(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

class ApplicationStatusEnum(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    WITHDRAWN = "withdrawn"

# Models
class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, index=True)  # Supabase auth user id
    first_name = Column(String(255))
    last_name = Column(String(255))
    preferred_name = Column(String(255))
    email = Column(String(255), index=True)
    phone = Column(String(50))
    linkedin_profile = Column(String(500))
    current_location = Column(String(255))
    nationality = Column(String(255))
    target_study_level = Column(String(100))
    language_proficiency = Column(JSON, default=list)
    goal = Column(Text)
    desired_field = Column(String(255))
    education = Column(JSON, default=list)
    career_goals = Column(JSON, default=dict)
    skills = Column(JSON, default=list)
    preferences = Column(JSON, default=dict)
    documents = Column(JSON, default=dict)
    vector_store_id = Column(String(255))
    profile_file_id = Column(String(255))
    recommendations_file_id = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    title = Column(String(255), default="New Conversation")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    messages = relationship("ChatMessage", cascade="all, delete-orphan")

class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default=RoleEnum.USER.value)
    message_content = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

class ConversationVectorFile(Base):
    __tablename__ = "conversation_vector_files"

    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), primary_key=True)
    vector_store_file_id = Column(String(255), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class EducationPathway(Base):
    __tablename__ = "education_pathways"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    qualification_type = Column(String(255), nullable=False)
    field_of_study = Column(String(255), nullable=False)
    subfields = Column(JSON, default=list)
    target_regions = Column(JSON, default=list)
    budget_range_usd = Column(JSON, default=dict)  # {"min": .., "max": ..}
    duration_months = Column(JSON, default=dict)  # {"min": .., "max": ..}
    alignment_rationale = Column(Text)
    alternatives = Column(JSON, default=list)
    query_string = Column(Text)
    user_feedback = Column(JSON)
    is_explored = Column(Boolean, default=False)
    last_explored_at = Column(DateTime(timezone=True))
    is_deleted = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class Program(Base):
    __tablename__ = "programs"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(500), nullable=False, index=True)
    institution = Column(String(500), nullable=False, index=True)
    degree_type = Column(String(255))
    field_of_study = Column(String(255))
    description = Column(Text)
    cost_per_year = Column(Float)
    duration = Column(Integer)  # months
    location = Column(String(255))
    start_date = Column(String(100))
    application_deadline = Column(String(100))
    requirements = Column(JSON, default=list)
    highlights = Column(JSON, default=list)
    page_link = Column(String(1000))
    page_links = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    scholarships = relationship("ProgramScholarship", cascade="all, delete-orphan")

class ProgramScholarship(Base):
    __tablename__ = "program_scholarships"

    id = Column(String(36), primary_key=True, default=new_id)
    program_id = Column(String(36), ForeignKey("programs.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(500), nullable=False)
    amount = Column(String(255))
    eligibility = Column(Text)

class Recommendation(Base):
    __tablename__ = "recommendations"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    program_id = Column(String(36), ForeignKey("programs.id", ondelete="CASCADE"), nullable=False)
    pathway_id = Column(String(36), ForeignKey("education_pathways.id", ondelete="SET NULL"))
    match_score = Column(Float, default=0)
    match_rationale = Column(JSON, default=dict)
    is_favorite = Column(Boolean, default=False)
    feedback_negative = Column(Boolean, default=False)
    feedback_reason = Column(Text)
    feedback_data = Column(JSON, default=dict)
    feedback_submitted_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    program = relationship("Program")

class RecommendationFile(Base):
    __tablename__ = "recommendation_files"

    id = Column(String(36), primary_key=True, default=new_id)
    recommendation_id = Column(String(36), ForeignKey("recommendations.id", ondelete="CASCADE"), nullable=False, index=True)
    file_id = Column(String(255), nullable=False)
    file_name = Column(String(500))
    created_at = Column(DateTime(timezone=True), default=utcnow)

class Application(Base):
    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    recommendation_id = Column(String(36), ForeignKey("recommendations.id", ondelete="SET NULL"))
    profile_file_id = Column(String(255))
    program_file_id = Column(String(255))
    planner_response_id = Column(String(255))
    status = Column(String(50), default=ApplicationStatusEnum.IN_PROGRESS.value)
    checklist = Column(JSON, default=list)
    timeline = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class ApplicationTask(Base):
    __tablename__ = "application_tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    application_id = Column(String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text)
    due_date = Column(String(50))  # ISO date
    status = Column(String(50), default=TaskStatusEnum.PENDING.value)
    sort_order = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
