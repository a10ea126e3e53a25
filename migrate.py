"""
Database migration script.
Creates every table defined in models: profiles, conversations, chat_messages,
education_pathways, programs, recommendations, applications, application_tasks, ...
"""

from models import Base
from database import get_db_connection

def create_tables():
    """Create all tables defined in models."""
    engine = get_db_connection()
    Base.metadata.create_all(bind=engine)
    print("✅ Tables created successfully")

if __name__ == "__main__":
    create_tables()
