"""Language model capability: neutral contract plus the pydantic-ai adapter."""

from .base import LanguageModel, Message, MessageRole, ModelRequest, ModelTurn, ToolSpec

__all__ = [
    "LanguageModel",
    "Message",
    "MessageRole",
    "ModelRequest",
    "ModelTurn",
    "ToolSpec",
]
