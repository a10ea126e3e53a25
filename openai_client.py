from openai import AsyncOpenAI
from typing import Optional
from config import settings

def get_openai_client() -> AsyncOpenAI:
    """Initialize and return the OpenAI client."""
    if not settings.OPENAI_API_KEY:
        raise ValueError("OPENAI_API_KEY environment variable not set")
    return AsyncOpenAI(api_key=settings.OPENAI_API_KEY)

def get_optional_openai_client() -> Optional[AsyncOpenAI]:
    """Like get_openai_client, but None when no key is configured so callers can fall back."""
    if not settings.OPENAI_API_KEY:
        return None
    return AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
