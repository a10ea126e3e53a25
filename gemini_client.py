import google.generativeai as genai
from config import settings
from prompts import TITLE_PROMPT
import logging

logger = logging.getLogger(__name__)

FALLBACK_TITLE = "Untitled Conversation"

def get_gemini_client():
    """Initialize and return Gemini client."""
    if not settings.GEMINI_API_KEY:
        raise ValueError("GEMINI_API_KEY environment variable not set")

    genai.configure(api_key=settings.GEMINI_API_KEY)
    return genai.GenerativeModel(settings.GEMINI_MODEL)

def clean_title(text: str) -> str:
    """Strip whitespace and surrounding quotes from a generated title."""
    title = (text or "").strip()
    if len(title) >= 2 and title[0] == title[-1] and title[0] in "\"'":
        title = title[1:-1].strip()
    return title or FALLBACK_TITLE

def generate_conversation_title(message_content: str) -> str:
    """
    Generate a 4-6 word title for a conversation from its first message.

    Args:
        message_content: The opening user message

    Returns:
        The title, or "Untitled Conversation" if generation fails
    """
    try:
        model = get_gemini_client()
        response = model.generate_content(TITLE_PROMPT.format(message=message_content[:2000]))
        return clean_title(response.text)
    except Exception as e:
        # Fallback title if AI fails
        logger.warning(f"Title generation failed: {e}")
        return FALLBACK_TITLE
