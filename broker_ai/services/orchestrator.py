"""
Broker AI Orchestrator

The public service of the package. Composes prompt construction, the
primary provider behind CircuitBreaker(RetryExecutor(...)), a single-shot
fallback provider and a deterministic degraded reply, with every provider
call metered through MetricsCollector.

chat() flow:
    knowledge lookup (best effort, bounded)
      -> PromptBuilder.build
      -> breaker.execute(retry.run(primary.complete + strict parse))
      -> on any failure: fallback.complete + strict parse, once, outside the breaker
      -> on failure of both: degraded ChatResult (never raises)

embed() and analyze_document() use the same breaker, retry and metering
but have no safe substitute result, so they raise once exhausted.

Reference Documents:
- Release It! (Nygard): Circuit breaker, timeouts, fail fast, degrade gracefully
- GUIDELINES pp. 2309: Graceful degradation and fallback chains

Pattern: Service layer with constructor-injected collaborators
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Optional, TypeVar, Union

from broker_ai.clients.knowledge_base import KnowledgeBaseClient, KnowledgeSearch
from broker_ai.core.config import Settings, get_settings
from broker_ai.core.exceptions import (
    AllProvidersFailedError,
    ConfigurationError,
    ProviderTimeoutError,
)
from broker_ai.models.domain import (
    ChatRequest,
    ChatResult,
    DocumentAnalysis,
    DocumentExtractionReply,
    DocumentType,
    KnowledgeSnippet,
    StructuredReply,
    parse_structured,
)
from broker_ai.observability.logging import (
    configure_from_settings,
    correlation_id_context,
    get_logger,
)
from broker_ai.observability.metrics import record_degraded_response, record_knowledge_lookup
from broker_ai.observability.sinks import (
    CompositeSink,
    LoggingSink,
    MonitoringSink,
    PrometheusSink,
)
from broker_ai.prompts.builder import PromptBuilder
from broker_ai.providers.base import LLMProvider, VisionProvider
from broker_ai.resilience.circuit_breaker_state_machine import (
    CircuitBreakerStateMachine,
    CircuitSnapshot,
)
from broker_ai.resilience.metrics import record_fallback_attempt, record_fallback_success
from broker_ai.resilience.retry import RetryExecutor, RetryPolicy
from broker_ai.services.cost_table import ModelCostTable
from broker_ai.services.metrics_collector import MetricsCollector

if TYPE_CHECKING:
    from redis.asyncio import Redis

T = TypeVar("T")

ESCALATION_ACTION = "call_agent"

DEGRADED_TEMPLATE = (
    "I apologize, but I'm experiencing technical difficulties. "
    "A team member will reach out to you shortly. "
    "Please call us at {contact} if urgent."
)


@dataclass(frozen=True)
class CallTimeouts:
    """Per-call time ceilings in seconds."""

    chat: float = 30.0
    fallback: float = 30.0
    embedding: float = 10.0
    document: float = 120.0
    knowledge: float = 5.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "CallTimeouts":
        return cls(
            chat=settings.chat_timeout_seconds,
            fallback=settings.fallback_timeout_seconds,
            embedding=settings.embedding_timeout_seconds,
            document=settings.document_timeout_seconds,
            knowledge=settings.knowledge_base_timeout_seconds,
        )


def _describe(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


class BrokerAIOrchestrator:
    """
    Resilient front door for model calls.

    The breaker, retry executor and metrics collector are shared by every
    concurrent call made through one orchestrator instance.

    Example:
        >>> orchestrator = BrokerAIOrchestrator.from_settings()
        >>> result = await orchestrator.chat(ChatRequest(message="What do I need for an SBA loan?"))
        >>> result.response_text
    """

    def __init__(
        self,
        primary: LLMProvider,
        fallback: LLMProvider,
        breaker: CircuitBreakerStateMachine,
        retry: RetryExecutor,
        metrics: MetricsCollector,
        prompt_builder: Optional[PromptBuilder] = None,
        knowledge: Optional[KnowledgeSearch] = None,
        vision: Optional[VisionProvider] = None,
        timeouts: Optional[CallTimeouts] = None,
        escalation_contact: str = "(949) 755-0720",
        knowledge_top_k: int = 3,
    ) -> None:
        """
        Args:
            primary: Provider tried first, behind breaker and retry
            fallback: Provider tried once when the primary path fails
            breaker: Breaker guarding the primary provider's dependency path
            retry: Retry executor for primary, embedding and document calls
            metrics: Collector that meters every provider call
            prompt_builder: System prompt builder
            knowledge: Optional knowledge search capability
            vision: Provider for analyze_document(); None disables it
            timeouts: Per-call ceilings
            escalation_contact: Contact quoted in the degraded reply
            knowledge_top_k: Snippets requested from the knowledge search
        """
        self._primary = primary
        self._fallback = fallback
        self._breaker = breaker
        self._retry = retry
        self._metrics = metrics
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._knowledge = knowledge
        self._vision = vision
        self._timeouts = timeouts or CallTimeouts()
        self._escalation_contact = escalation_contact
        self._knowledge_top_k = knowledge_top_k
        self._logger = get_logger(__name__)

    # =========================================================================
    # Factory
    # =========================================================================

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        knowledge: Optional[KnowledgeSearch] = None,
        sink: Optional[MonitoringSink] = None,
        redis_client: Optional["Redis"] = None,
    ) -> "BrokerAIOrchestrator":
        """
        Wire the production stack from Settings.

        Args:
            settings: Settings (default: get_settings())
            knowledge: Knowledge search; built from knowledge_base_url when None
            sink: Monitoring sink; logging + Prometheus (+ Redis) when None
            redis_client: Redis client for usage aggregation; built from
                redis_url when None and redis_url is set

        Raises:
            ConfigurationError: If a provider API key is missing
        """
        # vendor SDK adapters are only needed when wiring real providers
        from broker_ai.providers.anthropic import AnthropicProvider
        from broker_ai.providers.openai import OpenAIProvider, OpenAIVisionProvider

        settings = settings or get_settings()
        configure_from_settings(settings)

        openai_key = settings.openai_api_key.get_secret_value()
        anthropic_key = settings.anthropic_api_key.get_secret_value()
        if not openai_key:
            raise ConfigurationError("OpenAI API key is not configured", setting="openai_api_key")
        if not anthropic_key:
            raise ConfigurationError(
                "Anthropic API key is not configured", setting="anthropic_api_key"
            )

        primary = OpenAIProvider(
            api_key=openai_key,
            model=settings.primary_model,
            embedding_model=settings.embedding_model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            timeout_seconds=settings.chat_timeout_seconds,
        )
        fallback = AnthropicProvider(
            api_key=anthropic_key,
            model=settings.fallback_model,
            max_tokens=settings.max_tokens,
            timeout_seconds=settings.fallback_timeout_seconds,
        )
        vision = OpenAIVisionProvider(
            api_key=openai_key,
            vision_model=settings.vision_model,
            timeout_seconds=settings.document_timeout_seconds,
        )

        if knowledge is None and settings.knowledge_base_url:
            knowledge = KnowledgeBaseClient(
                base_url=settings.knowledge_base_url,
                timeout_seconds=settings.knowledge_base_timeout_seconds,
            )

        if sink is None:
            sink = cls._default_sink(settings, redis_client)

        return cls(
            primary=primary,
            fallback=fallback,
            breaker=CircuitBreakerStateMachine.from_settings(f"primary:{primary.name}", settings),
            retry=RetryExecutor(RetryPolicy.from_settings(settings)),
            metrics=MetricsCollector(ModelCostTable(), sink=sink),
            prompt_builder=PromptBuilder(
                max_snippets=settings.knowledge_top_k,
                max_excerpt_chars=settings.knowledge_excerpt_chars,
            ),
            knowledge=knowledge,
            vision=vision,
            timeouts=CallTimeouts.from_settings(settings),
            escalation_contact=settings.escalation_contact,
            knowledge_top_k=settings.knowledge_top_k,
        )

    @staticmethod
    def _default_sink(settings: Settings, redis_client: Optional["Redis"]) -> MonitoringSink:
        sinks: list[MonitoringSink] = [LoggingSink()]
        if settings.prometheus_enabled:
            sinks.append(PrometheusSink())
        if redis_client is None and settings.redis_url:
            from redis.asyncio import Redis

            redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
        if redis_client is not None:
            from broker_ai.services.usage_store import RedisUsageSink

            sinks.append(RedisUsageSink(redis_client))
        return CompositeSink(sinks)

    # =========================================================================
    # Accessors
    # =========================================================================

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def breaker(self) -> CircuitBreakerStateMachine:
        return self._breaker

    def circuit_snapshot(self) -> CircuitSnapshot:
        """Current state of the primary breaker."""
        return self._breaker.snapshot()

    async def aclose(self) -> None:
        """Flush pending metric deliveries and close provider/knowledge clients."""
        await self._metrics.flush()
        closed: set[int] = set()
        for provider in (self._primary, self._fallback, self._vision):
            if provider is None or id(provider) in closed:
                continue
            closed.add(id(provider))
            await provider.aclose()
        close = getattr(self._knowledge, "close", None)
        if close is not None:
            closing = close()
            if inspect.isawaitable(closing):
                await closing

    # =========================================================================
    # chat()
    # =========================================================================

    async def chat(self, request: ChatRequest) -> ChatResult:
        """
        Answer a chat request.

        Never raises for provider failures: when both providers fail the
        degraded reply is returned.

        Args:
            request: Message, history and prompt context

        Returns:
            ChatResult from the primary, the fallback or the degraded path
        """
        with correlation_id_context():
            snippets = await self._retrieve_knowledge(request.message)
            system_prompt = self._prompt_builder.build(request.context, snippets)

            errors: dict[str, Exception] = {}

            try:
                return await self._chat_primary(system_prompt, request)
            except Exception as e:
                errors["primary"] = e
                self._logger.warning(
                    "primary_path_failed",
                    provider=self._primary.name,
                    error=_describe(e),
                )

            try:
                return await self._chat_fallback(system_prompt, request)
            except Exception as e:
                errors["fallback"] = e
                self._logger.warning(
                    "fallback_path_failed",
                    provider=self._fallback.name,
                    error=_describe(e),
                )

            failure = AllProvidersFailedError(errors)
            self._logger.error("all_providers_failed", error=failure.message)
            record_degraded_response()
            return self.degraded_result()

    def degraded_result(self) -> ChatResult:
        """The deterministic reply used when no provider could answer."""
        return ChatResult(
            response_text=DEGRADED_TEMPLATE.format(contact=self._escalation_contact),
            suggested_actions=frozenset({ESCALATION_ACTION}),
            next_steps=[],
            confidence=0.0,
            provider="degraded",
            degraded=True,
        )

    async def _chat_primary(self, system_prompt: str, request: ChatRequest) -> ChatResult:
        provider = self._primary
        spent: list[int] = []

        async def attempt() -> StructuredReply:
            completion = await self._bounded(
                provider.complete(system_prompt, request.history, request.message),
                self._timeouts.chat,
                provider.name,
            )
            if completion.total_tokens:
                spent.append(completion.total_tokens)
            return parse_structured(completion.text, StructuredReply)

        reply = await self._metered(
            provider,
            provider.model,
            "chat",
            spent,
            self._breaker.execute(self._retry.run, attempt, f"chat:{provider.name}"),
        )
        return reply.to_result("primary")

    async def _chat_fallback(self, system_prompt: str, request: ChatRequest) -> ChatResult:
        provider = self._fallback
        spent: list[int] = []
        record_fallback_attempt(provider.name, "chat")

        async def attempt() -> StructuredReply:
            completion = await self._bounded(
                provider.complete(system_prompt, request.history, request.message),
                self._timeouts.fallback,
                provider.name,
            )
            if completion.total_tokens:
                spent.append(completion.total_tokens)
            return parse_structured(completion.text, StructuredReply)

        reply = await self._metered(provider, provider.model, "chat", spent, attempt())
        record_fallback_success(provider.name)
        return reply.to_result("fallback")

    async def _retrieve_knowledge(self, query: str) -> list[KnowledgeSnippet]:
        if self._knowledge is None:
            record_knowledge_lookup("skipped")
            return []

        try:
            snippets = await asyncio.wait_for(
                self._knowledge.search(query, self._knowledge_top_k),
                self._timeouts.knowledge,
            )
            snippets = [
                s if isinstance(s, KnowledgeSnippet) else KnowledgeSnippet.model_validate(s)
                for s in snippets or []
            ]
        except Exception as e:
            record_knowledge_lookup("error")
            self._logger.warning("knowledge_lookup_failed", error=_describe(e))
            return []

        record_knowledge_lookup("hit" if snippets else "empty")
        return snippets

    # =========================================================================
    # embed()
    # =========================================================================

    async def embed(self, text: str) -> list[float]:
        """
        Embed text with the primary provider's embedding model.

        Raises:
            CircuitBreakerError: Primary circuit is open
            Exception: The last provider error once retries are exhausted
        """
        provider = self._primary
        model = provider.embedding_model or provider.model
        spent: list[int] = []

        async def attempt() -> list[float]:
            embedding = await self._bounded(
                provider.embed(text),
                self._timeouts.embedding,
                provider.name,
            )
            if embedding.total_tokens:
                spent.append(embedding.total_tokens)
            return embedding.vector

        with correlation_id_context():
            return await self._metered(
                provider,
                model,
                "embed",
                spent,
                self._breaker.execute(self._retry.run, attempt, f"embed:{provider.name}"),
            )

    # =========================================================================
    # analyze_document()
    # =========================================================================

    async def analyze_document(
        self,
        document_ref: str,
        document_type: Union[DocumentType, str] = DocumentType.OTHER,
    ) -> DocumentAnalysis:
        """
        Extract structured fields from a client document.

        Args:
            document_ref: URL or data URL of the document image
            document_type: Type hint selecting the extraction prompt

        Returns:
            DocumentAnalysis with fields, confidence (default 0.8) and warnings

        Raises:
            ConfigurationError: No vision provider configured
            ValueError: Unknown document type
            CircuitBreakerError: Primary circuit is open
            Exception: The last provider error once retries are exhausted
        """
        if self._vision is None:
            raise ConfigurationError("Document analysis requires a vision provider")

        provider = self._vision
        doc_type = DocumentType(document_type)
        system_prompt = self._prompt_builder.build_document_prompt(doc_type)
        instructions = self._prompt_builder.document_instructions(doc_type)
        spent: list[int] = []

        async def attempt() -> DocumentExtractionReply:
            completion = await self._bounded(
                provider.analyze_document(system_prompt, instructions, document_ref),
                self._timeouts.document,
                provider.name,
            )
            if completion.total_tokens:
                spent.append(completion.total_tokens)
            return parse_structured(completion.text, DocumentExtractionReply)

        with correlation_id_context():
            reply = await self._metered(
                provider,
                provider.vision_model,
                "document",
                spent,
                self._breaker.execute(self._retry.run, attempt, f"document:{provider.name}"),
            )
        return reply.to_analysis()

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _metered(
        self,
        provider: LLMProvider,
        model: str,
        operation: str,
        spent: list[int],
        call: Awaitable[T],
    ) -> T:
        """Await call between one MetricsCollector start/finish pair."""
        record_id = self._metrics.start(model, provider=provider.name, operation=operation)
        try:
            result = await call
        except BaseException as e:
            self._metrics.finish(
                record_id,
                success=False,
                tokens=sum(spent) if spent else None,
                error=_describe(e),
            )
            raise

        self._metrics.finish(record_id, success=True, tokens=sum(spent) if spent else None)
        return result

    @staticmethod
    async def _bounded(call: Awaitable[T], timeout: float, provider: str) -> T:
        """Enforce a per-call ceiling; a timeout becomes ProviderTimeoutError."""
        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"{provider} call exceeded {timeout:.1f}s",
                provider=provider,
                timeout_seconds=timeout,
            ) from e
