
from .analysis_service import create_analysis, delete_analysis, get_analysis, list_analyses, reset_analysis
from .persona_chat import list_messages, send_message

__all__ = [
    "create_analysis",
    "get_analysis",
    "list_analyses",
    "reset_analysis",
    "delete_analysis",
    "list_messages",
    "send_message",
]
