"""
Language model access for graph nodes.

Each node talks to the model through a role (classifier, synthesizer, ...)
so model name, temperature and token limit can be tuned per role from
settings. All calls go through the shared LLM circuit breaker; blocking
calls additionally retry transient failures with backoff inside the
breaker, so the breaker only sees the final outcome.
"""

from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI

from api.orchestrators.graph_engine import emit_token
from libs.common.settings import ModelConfig, Settings
from libs.resilience.circuit_breaker import CircuitBreaker
from libs.resilience.retry import retry_from_settings, run_with_retry

logger = structlog.get_logger(__name__)


class ModelRole(str, Enum):
    CLASSIFIER = "classifier"
    PLANNER = "planner"
    EXPANDER = "expander"
    SYNTHESIZER = "synthesizer"
    QUALITY_CHECKER = "quality_checker"
    ESCALATION = "escalation"
    SUMMARY = "summary"


ModelFactory = Callable[[ModelRole, ModelConfig], BaseChatModel]


def extract_text(content: Any) -> str:
    """Extract plain text from a model response's ``content``.

    Handles plain strings and content-block lists (``[{"type": "text", "text": ...}]``).
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return ""


def openai_model_factory(settings: Settings) -> ModelFactory:
    """Default factory building one ``ChatOpenAI`` per role."""

    def build(role: ModelRole, config: ModelConfig) -> BaseChatModel:
        kwargs: Dict[str, Any] = {
            "model": config.model,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            # Retries are owned by LLMService
            "max_retries": 0,
        }
        if settings.openai_api_key:
            kwargs["api_key"] = settings.openai_api_key
        return ChatOpenAI(**kwargs)

    return build


class LLMService:
    """Role-based model invocation with circuit breaking and retry."""

    def __init__(
        self,
        settings: Settings,
        breaker: CircuitBreaker,
        model_factory: Optional[ModelFactory] = None,
    ):
        self.settings = settings
        self.breaker = breaker
        self._factory = model_factory or openai_model_factory(settings)
        self._models: Dict[ModelRole, BaseChatModel] = {}
        self._retrying = retry_from_settings(settings)

    def config_for(self, role: ModelRole) -> ModelConfig:
        return getattr(self.settings, f"{role.value}_model")

    def model_for(self, role: ModelRole) -> BaseChatModel:
        """Return the (lazily built, process-scoped) model for ``role``."""
        if role not in self._models:
            config = self.config_for(role)
            self._models[role] = self._factory(role, config)
            logger.debug("Model created", role=role.value, model=config.model)
        return self._models[role]

    async def invoke(self, role: ModelRole, messages: Sequence[BaseMessage]) -> str:
        """Invoke the role's model and return the response text.

        Raises:
            CircuitOpenError: the LLM circuit is open.
            OperationTimeoutError: the call exceeded the breaker's request timeout.
        """
        model = self.model_for(role)

        async def call() -> str:
            response = await model.ainvoke(list(messages))
            return extract_text(response.content)

        return await self.breaker.execute(lambda: run_with_retry(call, retrying=self._retrying))

    async def stream(self, role: ModelRole, messages: Sequence[BaseMessage]) -> str:
        """Stream the role's model, forwarding fragments to the active graph stream.

        Returns the full generated text. Streams are not retried: fragments
        already forwarded cannot be taken back.
        """
        model = self.model_for(role)

        async def call() -> str:
            parts: List[str] = []
            async for chunk in model.astream(list(messages)):
                text = extract_text(chunk.content)
                if text:
                    parts.append(text)
                    emit_token(text)
            return "".join(parts)

        return await self.breaker.execute(call)
