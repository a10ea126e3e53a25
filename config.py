import os
from typing import Optional

class Settings:
    """Application settings loaded from environment variables."""

    # OpenAI
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    MODEL: str = os.getenv("MODEL", "gpt-4.1-2025-04-14")
    FALLBACK_MODEL: str = os.getenv("FALLBACK_MODEL", "gpt-4.1-mini-2025-04-14")
    PLANNER_MODEL: str = os.getenv("PLANNER_MODEL", "gpt-4.1-2025-04-14")
    PATHWAY_MODEL: str = os.getenv("PATHWAY_MODEL", "o3-mini-2025-01-31")
    PROGRAM_MODEL: str = os.getenv("PROGRAM_MODEL", "o4-mini-2025-04-16")
    PLAN_MAX_OUTPUT_TOKENS: int = int(os.getenv("PLAN_MAX_OUTPUT_TOKENS", "2048"))
    PATHWAY_TIMEOUT_SECONDS: float = float(os.getenv("PATHWAY_TIMEOUT_SECONDS", "120"))

    # Gemini (conversation titles)
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

    # Google Custom Search (programme page links)
    GOOGLE_API_KEY: str = os.getenv("GOOGLE_API_KEY", "")
    GOOGLE_CX: str = os.getenv("GOOGLE_CX", "")

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    # Supabase auth
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_ANON_KEY: str = os.getenv("SUPABASE_ANON_KEY", "")
    SUPABASE_SERVICE_ROLE_KEY: str = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    SUPABASE_JWT_SECRET: str = os.getenv("SUPABASE_JWT_SECRET", "")

    # Server
    APP_URL: str = os.getenv("APP_URL", "http://localhost:8000")
    PORT: int = int(os.getenv("PORT", "8000"))
    HOST: str = os.getenv("HOST", "0.0.0.0")

    # CORS
    ALLOWED_ORIGINS: list = [
        origin.strip()
        for origin in os.getenv(
            "ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:5173"
        ).split(",")
        if origin.strip()
    ]

    @classmethod
    def validate(cls):
        """Validate required environment variables."""
        if not cls.OPENAI_API_KEY:
            raise ValueError("OPENAI_API_KEY environment variable is required")
        if not cls.SUPABASE_JWT_SECRET:
            raise ValueError("SUPABASE_JWT_SECRET environment variable is required")
        if not cls.DATABASE_URL:
            print("Warning: DATABASE_URL not set. Database features will be disabled.")
        if not cls.GEMINI_API_KEY:
            print("Warning: GEMINI_API_KEY not set. Conversation titles will use the fallback.")

    @classmethod
    def supabase_auth_url(cls, path: Optional[str] = None) -> str:
        """Base URL of the Supabase GoTrue API, optionally joined with a path."""
        base = f"{cls.SUPABASE_URL.rstrip('/')}/auth/v1"
        return f"{base}/{path.lstrip('/')}" if path else base

settings = Settings()
