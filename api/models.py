"""Pydantic models for the athlete support API.

This module defines the request and response models used by the HTTP
endpoints. Agent-internal types (citations, escalation records) are shared
with the orchestration layer.
"""

from __future__ import annotations

from typing import Dict, List, Literal, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from pydantic import BaseModel, Field, field_validator

from api.schemas.agent_state import Citation, EscalationInfo

MAX_MESSAGE_LENGTH = 10_000
MAX_MESSAGES = 50


class ChatMessage(BaseModel):
    """One conversation turn."""

    role: Literal["user", "assistant"] = Field(description="Who wrote the message", examples=["user"])
    content: str = Field(
        max_length=MAX_MESSAGE_LENGTH,
        description="Message text",
        examples=["How do I appeal a team selection decision?"],
    )

    def to_langchain(self) -> BaseMessage:
        if self.role == "user":
            return HumanMessage(content=self.content)
        return AIMessage(content=self.content)


class ChatRequest(BaseModel):
    """Request model for a chat turn.

    ``messages`` holds the visible conversation, oldest first; the last
    entry must be the user's new message.
    """

    messages: List[ChatMessage] = Field(min_length=1, max_length=MAX_MESSAGES)
    conversation_id: Optional[str] = Field(
        default=None,
        max_length=128,
        description="Stable identifier used for the rolling conversation summary",
    )
    user_sport: Optional[str] = Field(default=None, max_length=100, description="The athlete's sport, if known")

    @field_validator("messages")
    @classmethod
    def last_message_from_user(cls, v: List[ChatMessage]) -> List[ChatMessage]:
        """Validate that the conversation ends with a non-empty user message."""
        last = v[-1]
        if last.role != "user":
            raise ValueError("The last message must come from the user")
        if not last.content.strip():
            raise ValueError("The user message must not be empty")
        return v

    def to_langchain(self) -> List[BaseMessage]:
        return [message.to_langchain() for message in self.messages]


class ChatResponse(BaseModel):
    """Response model for a completed chat turn."""

    answer: str = Field(description="Answer text, including any appended disclaimer")
    citations: List[Citation] = Field(default_factory=list, description="Sources the answer draws on")
    escalation: Optional[EscalationInfo] = Field(
        default=None,
        description="Referral to an external authority, when one was made",
    )


class ErrorResponse(BaseModel):
    """Error body returned by the chat endpoints."""

    error_code: str = Field(description="Stable error code", examples=["GRAPH_TIMEOUT"])
    message: str = Field(description="Human-readable description")


class HealthResponse(BaseModel):
    """Response model for health check endpoints.

    Attributes:
        status: Health status
        service: Service name
        version: Service version
        timestamp: Unix timestamp
        circuits: Circuit breaker states by dependency, when the agent is loaded
    """

    status: Literal["healthy", "unhealthy", "ready", "not_ready"] = Field(description="Health status")
    service: str = Field(description="Service name", examples=["athlete-support-agent"])
    version: str = Field(description="Service version", examples=["0.1.0"])
    timestamp: float = Field(description="Unix timestamp")
    circuits: Dict[str, str] = Field(default_factory=dict)
