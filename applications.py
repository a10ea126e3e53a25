"""
Application data layer.

Every function here returns a result dictionary ({"success": bool, ...}) instead
of raising, so route handlers and the assistant's tool calls can forward the
outcome as-is.
"""

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from models import Application, ApplicationTask, Program, Recommendation, TaskStatusEnum, new_id, utcnow
from typing import Any, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)

TASK_FIELDS = {"title", "description", "due_date", "status", "sort_order"}

def _plain(item: Any) -> Dict[str, Any]:
    return item.model_dump() if hasattr(item, "model_dump") else dict(item)

def task_to_dict(task: ApplicationTask) -> Dict[str, Any]:
    return {
        "id": task.id,
        "application_id": task.application_id,
        "title": task.title,
        "description": task.description,
        "due_date": task.due_date,
        "status": task.status,
        "sort_order": task.sort_order,
    }

def application_to_dict(application: Application) -> Dict[str, Any]:
    return {
        "id": application.id,
        "user_id": application.user_id,
        "recommendation_id": application.recommendation_id,
        "profile_file_id": application.profile_file_id,
        "program_file_id": application.program_file_id,
        "planner_response_id": application.planner_response_id,
        "status": application.status,
        "checklist": application.checklist or [],
        "timeline": application.timeline or [],
        "created_at": application.created_at.isoformat() if application.created_at else None,
    }

def _owned(query, user_id: Optional[str]):
    if user_id is not None:
        query = query.filter(Application.user_id == user_id)
    return query

def _sync_checklist(db: Session, application_id: str):
    """Rewrite the application's checklist JSON from its task rows."""
    application = db.query(Application).filter(Application.id == application_id).first()
    if application is None:
        return
    tasks = (
        db.query(ApplicationTask)
        .filter(ApplicationTask.application_id == application_id)
        .order_by(ApplicationTask.sort_order.asc())
        .all()
    )
    application.checklist = [
        {"title": t.title, "description": t.description or "", "due_date": t.due_date, "status": t.status}
        for t in tasks
    ]
    application.updated_at = utcnow()

def create_application_with_plan(
    db: Session,
    user_id: str,
    recommendation_id: Optional[str],
    profile_file_id: Optional[str],
    program_file_id: Optional[str],
    plan: Any,
    planner_response_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Insert the application row and one task row per checklist item.

    Both inserts share one transaction: on failure nothing is left behind and
    {"success": False, "error": ...} is returned.
    """
    plan = _plain(plan)
    checklist = [_plain(item) for item in plan.get("checklist", [])]
    timeline = [_plain(item) for item in plan.get("timeline", [])]
    application_id = new_id()

    try:
        db.add(Application(
            id=application_id,
            user_id=user_id,
            recommendation_id=recommendation_id,
            profile_file_id=profile_file_id,
            program_file_id=program_file_id,
            planner_response_id=planner_response_id,
            checklist=checklist,
            timeline=timeline,
        ))
        db.flush()
        for index, item in enumerate(checklist):
            db.add(ApplicationTask(
                application_id=application_id,
                title=item.get("title"),
                description=item.get("description") or "",
                due_date=item.get("due_date"),
                status=TaskStatusEnum.PENDING.value,
                sort_order=index,
            ))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[ERROR] Failed to create application: {e}")
        return {"success": False, "error": str(e)}

    logger.info(f"[SUCCESS] Application {application_id} created with {len(checklist)} tasks")
    return {"success": True, "application_id": application_id}

def get_application_state(db: Session, application_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    """Application row enriched with program details, plus its tasks in order."""
    try:
        application = _owned(db.query(Application).filter(Application.id == application_id), user_id).first()
        if application is None:
            return {"success": False, "error": "Application not found"}

        data = application_to_dict(application)
        data.update({"program_name": None, "institution_name": None, "degree_type": None})
        if application.recommendation_id:
            program = (
                db.query(Program)
                .join(Recommendation, Recommendation.program_id == Program.id)
                .filter(Recommendation.id == application.recommendation_id)
                .first()
            )
            if program:
                data.update({
                    "program_name": program.name,
                    "institution_name": program.institution,
                    "degree_type": program.degree_type,
                })

        tasks = (
            db.query(ApplicationTask)
            .filter(ApplicationTask.application_id == application_id)
            .order_by(ApplicationTask.sort_order.asc())
            .all()
        )
        return {"success": True, "application": data, "tasks": [task_to_dict(t) for t in tasks]}
    except SQLAlchemyError as e:
        logger.error(f"[ERROR] get_application_state failed: {e}")
        return {"success": False, "error": str(e)}

def _find_task(db: Session, task_id: str, user_id: Optional[str]) -> Optional[ApplicationTask]:
    query = (
        db.query(ApplicationTask)
        .join(Application, Application.id == ApplicationTask.application_id)
        .filter(ApplicationTask.id == task_id)
    )
    return _owned(query, user_id).first()

def update_application_task(db: Session, task_id: str, updates: Dict[str, Any], user_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Apply field updates to a task.
    None and empty-string values are dropped, except an explicit due_date of None,
    which clears the date.
    """
    clean = {}
    for key, value in (updates or {}).items():
        if key not in TASK_FIELDS:
            continue
        if key == "due_date" and value is None:
            clean[key] = None
        elif value is not None and value != "":
            clean[key] = value

    if not clean:
        return {"success": False, "error": "No valid updates provided"}

    try:
        task = _find_task(db, task_id, user_id)
        if task is None:
            return {"success": False, "error": "Task not found"}
        for key, value in clean.items():
            setattr(task, key, value)
        task.updated_at = utcnow()
        db.flush()
        _sync_checklist(db, task.application_id)
        db.commit()
        db.refresh(task)
        return {"success": True, "task": task_to_dict(task)}
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[ERROR] update_application_task failed: {e}")
        return {"success": False, "error": str(e)}

def create_application_task(
    db: Session,
    application_id: str,
    title: str,
    description: str = "",
    due_date: Optional[str] = None,
    sort_order: Optional[int] = None,
    user_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Add a task; without an explicit sort_order it goes to the end."""
    try:
        application = _owned(db.query(Application).filter(Application.id == application_id), user_id).first()
        if application is None:
            return {"success": False, "error": "Application not found"}
        if sort_order is None:
            sort_order = db.query(ApplicationTask).filter(ApplicationTask.application_id == application_id).count()
        task = ApplicationTask(
            application_id=application_id,
            title=title,
            description=description,
            due_date=due_date,
            status=TaskStatusEnum.PENDING.value,
            sort_order=sort_order,
        )
        db.add(task)
        db.flush()
        _sync_checklist(db, application_id)
        db.commit()
        db.refresh(task)
        return {"success": True, "task": task_to_dict(task)}
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[ERROR] create_application_task failed: {e}")
        return {"success": False, "error": str(e)}

def delete_application_task(db: Session, task_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    try:
        task = _find_task(db, task_id, user_id)
        if task is None:
            return {"success": False, "error": "Task not found"}
        application_id = task.application_id
        db.delete(task)
        db.flush()
        _sync_checklist(db, application_id)
        db.commit()
        return {"success": True, "task_id": task_id}
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[ERROR] delete_application_task failed: {e}")
        return {"success": False, "error": str(e)}

def update_application_timeline(db: Session, application_id: str, timeline: List[Any], user_id: Optional[str] = None) -> Dict[str, Any]:
    try:
        application = _owned(db.query(Application).filter(Application.id == application_id), user_id).first()
        if application is None:
            return {"success": False, "error": "Application not found"}
        application.timeline = [_plain(item) for item in timeline]
        application.updated_at = utcnow()
        db.commit()
        return {"success": True, "timeline": application.timeline}
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[ERROR] update_application_timeline failed: {e}")
        return {"success": False, "error": str(e)}

def set_planner_response_id(db: Session, application_id: str, response_id: Optional[str]) -> Dict[str, Any]:
    if not response_id:
        return {"success": True}
    try:
        db.query(Application).filter(Application.id == application_id).update(
            {"planner_response_id": response_id}
        )
        db.commit()
        return {"success": True}
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[ERROR] set_planner_response_id failed: {e}")
        return {"success": False, "error": str(e)}

def list_user_applications(db: Session, user_id: str) -> Dict[str, Any]:
    try:
        rows = (
            db.query(Application.id, Application.recommendation_id)
            .filter(Application.user_id == user_id)
            .order_by(Application.created_at.desc())
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[ERROR] list_user_applications failed: {e}")
        return {"success": False, "error": str(e)}
    return {
        "success": True,
        "applications": [{"id": row.id, "recommendation_id": row.recommendation_id} for row in rows],
    }
