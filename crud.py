"""
CRUD operations for database models.

The multi-row helpers near the bottom (store_recommendation, store_programs_batch,
create_education_pathways, ...) stand in for the stored procedures the web client
used to call.
"""

from sqlalchemy.orm import Session
from sqlalchemy import or_, func
from models import (
    Profile, Conversation, ChatMessage, ConversationVectorFile, EducationPathway,
    Program, ProgramScholarship, Recommendation, RecommendationFile, utcnow,
)
from typing import Any, List, Optional, Dict
import logging

logger = logging.getLogger(__name__)

PROFILE_COLUMN_MAP = {
    "first_name": "first_name",
    "last_name": "last_name",
    "email": "email",
    "phone": "phone",
    "preferred_name": "preferred_name",
    "linked_in_profile": "linkedin_profile",
    "current_location": "current_location",
    "nationality": "nationality",
    "target_study_level": "target_study_level",
    "language_proficiency": "language_proficiency",
    "goal": "goal",
    "desired_field": "desired_field",
    "education": "education",
    "career_goals": "career_goals",
    "skills": "skills",
    "preferences": "preferences",
    "documents": "documents",
    "vector_store_id": "vector_store_id",
    "profile_file_id": "profile_file_id",
}

PROGRAM_FIELDS = [
    "name", "institution", "degree_type", "field_of_study", "description",
    "cost_per_year", "duration", "location", "start_date", "application_deadline",
    "requirements", "highlights", "page_link", "page_links",
]

RECOMMENDATION_FIELDS = [
    "match_score", "match_rationale", "is_favorite", "pathway_id",
    "feedback_negative", "feedback_reason", "feedback_data",
]

def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None

# Profile operations
def profile_columns(profile_data: Dict[str, Any]) -> Dict[str, Any]:
    """Map ProfileData field names onto profile table columns, dropping unknown keys."""
    return {
        PROFILE_COLUMN_MAP[key]: value
        for key, value in profile_data.items()
        if key in PROFILE_COLUMN_MAP
    }

def get_profile(db: Session, user_id: str) -> Optional[Profile]:
    """Get profile by auth user ID."""
    return db.query(Profile).filter(Profile.id == user_id).first()

def upsert_profile(db: Session, user_id: str, columns: Dict[str, Any]) -> Profile:
    """Insert the profile, or overwrite the supplied columns when it already exists."""
    try:
        profile = get_profile(db, user_id)
        if profile is None:
            profile = Profile(id=user_id)
            db.add(profile)
        for key, value in columns.items():
            setattr(profile, key, value)
        profile.updated_at = utcnow()
        db.commit()
        db.refresh(profile)
        return profile
    except Exception as e:
        print(f"[ERROR] upsert_profile failed: {str(e)}")
        db.rollback()
        raise

def update_profile(db: Session, user_id: str, columns: Dict[str, Any]) -> Optional[Profile]:
    """Update only the supplied columns of an existing profile."""
    profile = get_profile(db, user_id)
    if profile is None:
        return None
    try:
        for key, value in columns.items():
            setattr(profile, key, value)
        db.commit()
        db.refresh(profile)
        return profile
    except Exception as e:
        print(f"[ERROR] update_profile failed: {str(e)}")
        db.rollback()
        raise

def delete_profile(db: Session, user_id: str) -> Optional[str]:
    """
    Delete the user's recommendations, then the profile.
    Returns the vector store ID the profile pointed at so the caller can clean it up.
    """
    profile = get_profile(db, user_id)
    vector_store_id = profile.vector_store_id if profile else None

    try:
        db.query(Recommendation).filter(Recommendation.user_id == user_id).delete(synchronize_session=False)
        db.commit()
    except Exception as e:
        # Continue: the profile delete below is what matters
        logger.warning(f"Failed to delete recommendations for {user_id}: {e}")
        db.rollback()

    if profile is not None:
        try:
            db.delete(profile)
            db.commit()
        except Exception as e:
            print(f"[ERROR] delete_profile failed: {str(e)}")
            db.rollback()
            raise
    return vector_store_id

def format_profile(profile: Profile) -> Dict[str, Any]:
    """Profile row in the camelCase shape the web client expects, with defaults."""
    return {
        "userId": profile.id,
        "firstName": profile.first_name or "",
        "lastName": profile.last_name or "",
        "email": profile.email or "",
        "phone": profile.phone or "",
        "preferredName": profile.preferred_name or "",
        "linkedInProfile": profile.linkedin_profile or "",
        "currentLocation": profile.current_location or "",
        "nationality": profile.nationality or "",
        "targetStudyLevel": profile.target_study_level or "",
        "languageProficiency": profile.language_proficiency or [],
        "goal": profile.goal or "",
        "desiredField": profile.desired_field or "",
        "education": profile.education or [],
        "careerGoals": profile.career_goals or {
            "shortTerm": "", "longTerm": "", "desiredIndustry": [], "desiredRoles": []
        },
        "skills": profile.skills or [],
        "preferences": profile.preferences or {
            "preferredLocations": [], "studyMode": "Full-time", "startDate": "",
            "budgetRange": {"min": 0, "max": 0},
        },
        "documents": profile.documents or {},
        "vectorStoreId": profile.vector_store_id,
        "profileFileId": profile.profile_file_id,
    }

def find_missing_profile_fields(profile: Optional[Profile]) -> List[str]:
    """List the profile sections pathway generation cannot run without."""
    if profile is None:
        return ["profile"]

    missing = []
    if not profile.vector_store_id:
        missing.append("memory store (vector store)")
    if not profile.education:
        missing.append("education history")
    if not profile.target_study_level:
        missing.append("target study level")
    goals = profile.career_goals or {}
    if not (goals.get("shortTerm") or goals.get("longTerm")):
        missing.append("career goals")
    if not profile.preferences:
        missing.append("preferences")
    return missing

# Conversation operations
def list_conversations(db: Session, user_id: str) -> List[Conversation]:
    return (
        db.query(Conversation)
        .filter(Conversation.user_id == user_id)
        .order_by(Conversation.updated_at.desc())
        .all()
    )

def create_conversation(db: Session, user_id: str, title: str = "New Conversation") -> Conversation:
    conversation = Conversation(user_id=user_id, title=title)
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    return conversation

def get_conversation(db: Session, conversation_id: str, user_id: str) -> Optional[Conversation]:
    """Get a conversation only if it belongs to the user."""
    return (
        db.query(Conversation)
        .filter(Conversation.id == conversation_id, Conversation.user_id == user_id)
        .first()
    )

def update_conversation_title(db: Session, conversation: Conversation, title: str) -> Conversation:
    conversation.title = title
    conversation.updated_at = utcnow()
    db.commit()
    db.refresh(conversation)
    return conversation

def delete_conversation(db: Session, conversation: Conversation):
    db.query(ChatMessage).filter(ChatMessage.conversation_id == conversation.id).delete(synchronize_session=False)
    db.query(ConversationVectorFile).filter(
        ConversationVectorFile.conversation_id == conversation.id
    ).delete(synchronize_session=False)
    db.delete(conversation)
    db.commit()

def list_messages(db: Session, conversation_id: str) -> List[ChatMessage]:
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.conversation_id == conversation_id)
        .order_by(ChatMessage.created_at.asc())
        .all()
    )

def add_message(db: Session, conversation: Conversation, user_id: str, role: str, content: Any) -> ChatMessage:
    """Append a message and bump the conversation's updated_at."""
    try:
        message = ChatMessage(
            user_id=user_id,
            conversation_id=conversation.id,
            role=role,
            message_content=content,
        )
        db.add(message)
        conversation.updated_at = utcnow()
        db.commit()
        db.refresh(message)
        return message
    except Exception as e:
        print(f"[ERROR] add_message failed: {str(e)}")
        db.rollback()
        raise

def upsert_conversation_vector_file(db: Session, conversation_id: str, file_id: str) -> Optional[str]:
    """Point a conversation at its transcript file. Returns the file ID it replaced, if any."""
    pointer = (
        db.query(ConversationVectorFile)
        .filter(ConversationVectorFile.conversation_id == conversation_id)
        .first()
    )
    previous = None
    if pointer:
        previous = pointer.vector_store_file_id
        pointer.vector_store_file_id = file_id
        pointer.updated_at = utcnow()
    else:
        db.add(ConversationVectorFile(conversation_id=conversation_id, vector_store_file_id=file_id))
    db.commit()
    return previous

# Pathway operations
def _range(value: Any) -> Dict[str, Any]:
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return dict(value or {})

def pathway_to_dict(pathway: EducationPathway) -> Dict[str, Any]:
    return {
        "id": pathway.id,
        "user_id": pathway.user_id,
        "title": pathway.title,
        "qualification_type": pathway.qualification_type,
        "field_of_study": pathway.field_of_study,
        "subfields": pathway.subfields or [],
        "target_regions": pathway.target_regions or [],
        "budget_range_usd": pathway.budget_range_usd or {},
        "duration_months": pathway.duration_months or {},
        "alignment_rationale": pathway.alignment_rationale,
        "alternatives": pathway.alternatives or [],
        "query_string": pathway.query_string,
        "user_feedback": pathway.user_feedback,
        "is_explored": bool(pathway.is_explored),
        "last_explored_at": _iso(pathway.last_explored_at),
        "created_at": _iso(pathway.created_at),
    }

def _new_pathway(user_id: str, data: Dict[str, Any]) -> EducationPathway:
    return EducationPathway(
        user_id=user_id,
        title=data["title"],
        qualification_type=data["qualification_type"],
        field_of_study=data["field_of_study"],
        subfields=data.get("subfields") or [],
        target_regions=data.get("target_regions") or [],
        budget_range_usd=_range(data.get("budget_range_usd")),
        duration_months=_range(data.get("duration_months")),
        alignment_rationale=data.get("alignment_rationale"),
        alternatives=data.get("alternatives") or [],
        query_string=data.get("query_string"),
    )

def create_pathway(db: Session, user_id: str, data: Dict[str, Any]) -> EducationPathway:
    """Insert a single pathway."""
    try:
        pathway = _new_pathway(user_id, data)
        db.add(pathway)
        db.commit()
        db.refresh(pathway)
        return pathway
    except Exception as e:
        print(f"[ERROR] create_pathway failed: {str(e)}")
        db.rollback()
        raise

def create_education_pathways(db: Session, user_id: str, pathways: List[Dict[str, Any]]) -> List[EducationPathway]:
    """Insert a batch of pathways in one transaction, preserving input order."""
    try:
        rows = [_new_pathway(user_id, data) for data in pathways]
        db.add_all(rows)
        db.commit()
        for row in rows:
            db.refresh(row)
        return rows
    except Exception as e:
        print(f"[ERROR] create_education_pathways failed: {str(e)}")
        db.rollback()
        raise

def get_user_pathways(db: Session, user_id: str, include_deleted: bool = False) -> List[EducationPathway]:
    query = db.query(EducationPathway).filter(EducationPathway.user_id == user_id)
    if not include_deleted:
        query = query.filter(EducationPathway.is_deleted.is_(False))
    return query.order_by(EducationPathway.created_at.asc()).all()

def get_pathway(db: Session, pathway_id: str, user_id: str) -> Optional[EducationPathway]:
    return (
        db.query(EducationPathway)
        .filter(EducationPathway.id == pathway_id, EducationPathway.user_id == user_id)
        .first()
    )

def get_deleted_pathway_feedback(db: Session, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
    """Summaries of soft-deleted pathways that carry user feedback."""
    rows = (
        db.query(EducationPathway)
        .filter(
            EducationPathway.user_id == user_id,
            EducationPathway.is_deleted.is_(True),
            EducationPathway.user_feedback.isnot(None),
        )
        .order_by(EducationPathway.updated_at.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "pathwaySummary": f"{row.title} - {row.qualification_type} in {row.field_of_study}",
            "feedback": row.user_feedback,
        }
        for row in rows
    ]

def delete_pathway(db: Session, pathway: EducationPathway, feedback: Optional[Dict[str, Any]] = None):
    """Soft-delete a pathway and drop its non-favorite recommendations."""
    try:
        pathway.is_deleted = True
        if feedback:
            pathway.user_feedback = feedback
        db.query(Recommendation).filter(
            Recommendation.pathway_id == pathway.id,
            Recommendation.is_favorite.is_(False),
        ).delete(synchronize_session=False)
        db.commit()
    except Exception as e:
        print(f"[ERROR] delete_pathway failed: {str(e)}")
        db.rollback()
        raise

def mark_pathway_explored(db: Session, pathway: EducationPathway):
    pathway.is_explored = True
    pathway.last_explored_at = utcnow()
    db.commit()

def reset_pathways(db: Session, user_id: str) -> Dict[str, Any]:
    """
    Permanently delete every pathway of the user, soft-deleted ones included,
    with the recommendations under them. Returns counts and the vector file IDs
    the deleted recommendations pointed at.
    """
    pathway_ids = [p.id for p in get_user_pathways(db, user_id, include_deleted=True)]
    if not pathway_ids:
        return {"deleted_pathways": 0, "deleted_programs": 0, "file_ids": []}

    try:
        recommendation_ids = [
            row.id for row in db.query(Recommendation.id).filter(
                Recommendation.user_id == user_id,
                Recommendation.pathway_id.in_(pathway_ids),
            )
        ]
        file_ids = []
        if recommendation_ids:
            files = db.query(RecommendationFile).filter(RecommendationFile.recommendation_id.in_(recommendation_ids))
            file_ids = [row.file_id for row in files]
            files.delete(synchronize_session=False)
            db.query(Recommendation).filter(Recommendation.id.in_(recommendation_ids)).delete(synchronize_session=False)
        deleted = db.query(EducationPathway).filter(
            EducationPathway.user_id == user_id,
            EducationPathway.id.in_(pathway_ids),
        ).delete(synchronize_session=False)
        db.commit()
    except Exception as e:
        print(f"[ERROR] reset_pathways failed: {str(e)}")
        db.rollback()
        raise
    return {"deleted_pathways": deleted, "deleted_programs": len(recommendation_ids), "file_ids": file_ids}

# Program / recommendation operations
def program_to_dict(program: Program) -> Dict[str, Any]:
    return {
        "id": program.id,
        "name": program.name,
        "institution": program.institution,
        "degree_type": program.degree_type,
        "field_of_study": program.field_of_study,
        "description": program.description,
        "cost_per_year": program.cost_per_year,
        "duration": program.duration,
        "location": program.location,
        "start_date": program.start_date,
        "application_deadline": program.application_deadline,
        "requirements": program.requirements or [],
        "highlights": program.highlights or [],
        "page_link": program.page_link,
        "page_links": program.page_links or [],
        "scholarships": [
            {"name": s.name, "amount": s.amount, "eligibility": s.eligibility}
            for s in program.scholarships
        ],
    }

def recommendation_to_dict(recommendation: Recommendation) -> Dict[str, Any]:
    """Recommendation joined with its program, flattened for API responses."""
    data = program_to_dict(recommendation.program) if recommendation.program else {}
    data.update({
        "id": recommendation.id,
        "program_id": recommendation.program_id,
        "pathway_id": recommendation.pathway_id,
        "match_score": recommendation.match_score,
        "match_rationale": recommendation.match_rationale,
        "is_favorite": bool(recommendation.is_favorite),
        "feedback_negative": bool(recommendation.feedback_negative),
        "feedback_reason": recommendation.feedback_reason,
        "feedback_submitted_at": _iso(recommendation.feedback_submitted_at),
        "created_at": _iso(recommendation.created_at),
    })
    return data

def _replace_scholarships(db: Session, program: Program, scholarships: List[Dict[str, Any]]):
    db.query(ProgramScholarship).filter(ProgramScholarship.program_id == program.id).delete(synchronize_session=False)
    for item in scholarships:
        db.add(ProgramScholarship(
            program_id=program.id,
            name=item.get("name") or "Unnamed Scholarship",
            amount=str(item.get("amount")) if item.get("amount") is not None else None,
            eligibility=item.get("eligibility"),
        ))

def _store_recommendation(db: Session, user_id: str, data: Dict[str, Any], pathway_id: Optional[str]) -> Recommendation:
    # Programs are shared: match on name + institution, case-insensitively
    program = (
        db.query(Program)
        .filter(
            func.lower(Program.name) == str(data["name"]).lower(),
            func.lower(Program.institution) == str(data["institution"]).lower(),
        )
        .first()
    )
    if program is None:
        program = Program(name=data["name"], institution=data["institution"])
        db.add(program)
    for field in PROGRAM_FIELDS:
        if field in data and data[field] is not None:
            setattr(program, field, data[field])
    db.flush()

    if data.get("scholarships") is not None:
        _replace_scholarships(db, program, data["scholarships"])

    recommendation = (
        db.query(Recommendation)
        .filter(Recommendation.user_id == user_id, Recommendation.program_id == program.id)
        .first()
    )
    if recommendation is None:
        recommendation = Recommendation(user_id=user_id, program_id=program.id)
        db.add(recommendation)
    recommendation.pathway_id = pathway_id or data.get("pathway_id") or recommendation.pathway_id
    recommendation.match_score = data.get("match_score", recommendation.match_score or 0)
    recommendation.match_rationale = data.get("match_rationale", recommendation.match_rationale)
    if data.get("is_favorite") is not None:
        recommendation.is_favorite = bool(data["is_favorite"])
    db.flush()
    return recommendation

def store_recommendation(db: Session, user_id: str, data: Dict[str, Any], pathway_id: Optional[str] = None) -> Recommendation:
    """Upsert the program (with scholarships) and the user's recommendation pointing at it."""
    try:
        recommendation = _store_recommendation(db, user_id, data, pathway_id)
        db.commit()
        db.refresh(recommendation)
        return recommendation
    except Exception as e:
        print(f"[ERROR] store_recommendation failed: {str(e)}")
        db.rollback()
        raise

def store_programs_batch(db: Session, user_id: str, pathway_id: Optional[str], programs: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Store a list of researched programs for a pathway.
    Each program is saved independently; invalid ones are reported back instead of aborting the batch.
    """
    saved, rejected = [], []
    for data in programs:
        if not data.get("name") or not data.get("institution"):
            rejected.append({"program": data, "error": "Program name and institution are required"})
            continue
        try:
            recommendation = _store_recommendation(db, user_id, data, pathway_id)
            db.commit()
            saved.append(recommendation.id)
        except Exception as e:
            logger.warning(f"Rejected program {data.get('name')}: {e}")
            db.rollback()
            rejected.append({"program": data, "error": str(e)})
    return {"saved_ids": saved, "rejected": rejected}

def get_recommendation(db: Session, recommendation_id: str, user_id: str) -> Optional[Recommendation]:
    return (
        db.query(Recommendation)
        .filter(Recommendation.id == recommendation_id, Recommendation.user_id == user_id)
        .first()
    )

def list_user_recommendations(db: Session, user_id: str, favorites_only: bool = False) -> List[Recommendation]:
    query = db.query(Recommendation).filter(Recommendation.user_id == user_id)
    if favorites_only:
        query = query.filter(Recommendation.is_favorite.is_(True))
    return query.order_by(Recommendation.match_score.desc()).all()

def get_pathway_programs(db: Session, pathway_id: str, user_id: str) -> List[Recommendation]:
    return (
        db.query(Recommendation)
        .filter(Recommendation.pathway_id == pathway_id, Recommendation.user_id == user_id)
        .order_by(Recommendation.match_score.desc())
        .all()
    )

def infer_recommendation_id(db: Session, user_id: str) -> Optional[str]:
    """Most recent favorite recommendation, else the most recent one."""
    base = db.query(Recommendation).filter(Recommendation.user_id == user_id)
    recommendation = (
        base.filter(Recommendation.is_favorite.is_(True))
        .order_by(Recommendation.created_at.desc())
        .first()
    ) or base.order_by(Recommendation.created_at.desc()).first()
    return recommendation.id if recommendation else None

def search_recommendations(db: Session, user_id: str, name: Optional[str] = None, institution: Optional[str] = None) -> List[Recommendation]:
    """Case-insensitive substring match on program name OR institution."""
    conditions = []
    if name:
        conditions.append(Program.name.ilike(f"%{name}%"))
    if institution:
        conditions.append(Program.institution.ilike(f"%{institution}%"))
    if not conditions:
        return []
    return (
        db.query(Recommendation)
        .join(Program, Recommendation.program_id == Program.id)
        .filter(Recommendation.user_id == user_id, or_(*conditions))
        .order_by(Recommendation.created_at.desc())
        .all()
    )

def toggle_recommendation_favorite(db: Session, recommendation: Recommendation) -> bool:
    recommendation.is_favorite = not recommendation.is_favorite
    db.commit()
    return bool(recommendation.is_favorite)

def set_recommendation_feedback(db: Session, recommendation: Recommendation, negative: bool, reason: Optional[str], data: Dict[str, Any]):
    recommendation.feedback_negative = negative
    recommendation.feedback_reason = reason
    recommendation.feedback_data = data
    recommendation.feedback_submitted_at = utcnow()
    db.commit()

def set_program_page_links(db: Session, program: Program, links: List[str]) -> Program:
    program.page_links = list(links)
    if not program.page_link and links:
        program.page_link = links[0]
    db.commit()
    return program

def delete_recommendation(db: Session, recommendation: Recommendation) -> List[str]:
    """Delete one recommendation and its file rows. Returns the vector file IDs it had."""
    try:
        files = db.query(RecommendationFile).filter(RecommendationFile.recommendation_id == recommendation.id)
        file_ids = [row.file_id for row in files]
        files.delete(synchronize_session=False)
        db.delete(recommendation)
        db.commit()
        return file_ids
    except Exception as e:
        print(f"[ERROR] delete_recommendation failed: {str(e)}")
        db.rollback()
        raise

def get_recommendation_file(db: Session, recommendation_id: str, user_id: str) -> Optional[RecommendationFile]:
    """Latest file row of a recommendation the user owns."""
    return (
        db.query(RecommendationFile)
        .join(Recommendation, RecommendationFile.recommendation_id == Recommendation.id)
        .filter(RecommendationFile.recommendation_id == recommendation_id, Recommendation.user_id == user_id)
        .order_by(RecommendationFile.created_at.desc())
        .first()
    )

def save_recommendation_file(db: Session, recommendation_id: str, file_id: str, file_name: str) -> List[str]:
    """Replace the recommendation's file rows with one new row. Returns the replaced file IDs."""
    try:
        existing = db.query(RecommendationFile).filter(RecommendationFile.recommendation_id == recommendation_id).all()
        replaced = [row.file_id for row in existing]
        for row in existing:
            db.delete(row)
        db.add(RecommendationFile(recommendation_id=recommendation_id, file_id=file_id, file_name=file_name))
        db.commit()
        return replaced
    except Exception as e:
        print(f"[ERROR] save_recommendation_file failed: {str(e)}")
        db.rollback()
        raise

def update_recommendation(
    db: Session,
    recommendation: Recommendation,
    program_updates: Optional[Dict[str, Any]] = None,
    scholarships: Optional[List[Dict[str, Any]]] = None,
    recommendation_updates: Optional[Dict[str, Any]] = None,
    files: Optional[List[Dict[str, Any]]] = None,
) -> Recommendation:
    """Apply program fields, replace scholarships, apply recommendation fields, replace files."""
    try:
        program = recommendation.program
        for field, value in (program_updates or {}).items():
            if field in PROGRAM_FIELDS:
                setattr(program, field, value)
        if scholarships is not None:
            _replace_scholarships(db, program, scholarships)
        for field, value in (recommendation_updates or {}).items():
            if field in RECOMMENDATION_FIELDS:
                setattr(recommendation, field, value)
        if files is not None:
            db.query(RecommendationFile).filter(
                RecommendationFile.recommendation_id == recommendation.id
            ).delete(synchronize_session=False)
            for item in files:
                db.add(RecommendationFile(
                    recommendation_id=recommendation.id,
                    file_id=item["file_id"],
                    file_name=item.get("file_name"),
                ))
        db.commit()
        db.refresh(recommendation)
        return recommendation
    except Exception as e:
        print(f"[ERROR] update_recommendation failed: {str(e)}")
        db.rollback()
        raise
