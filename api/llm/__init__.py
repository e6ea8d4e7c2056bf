"""Role-based language model access."""

from api.llm.llm_service import LLMService, ModelRole, extract_text

__all__ = ["LLMService", "ModelRole", "extract_text"]
