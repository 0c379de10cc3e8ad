"""Chatkin - workspace chat assistant core."""

from .chat import ChatRequest, ChatService
from .config import ChatMode, Settings, load_settings

__version__ = "0.1.0"

__all__ = ["ChatMode", "ChatRequest", "ChatService", "Settings", "load_settings"]
