"""
luminous-client - Async Client

Executes tasks against the inference service, either as one request with a
single response body or as a stream of chunks.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Union

import httpx

from .auth import TokenProvider
from .config import ClientConfig
from .encoding import EncodedRequest, decode_model_settings, decode_output, encode_task
from .how import Deadline, How
from .http import HttpTransport
from .stream import ChatProtocol, ChunkStream, CompletionProtocol, StreamProtocol
from .tasks import (
    BatchSemanticEmbeddingOutput,
    ChatOutput,
    CompletionOutput,
    DetokenizationOutput,
    ExplanationOutput,
    ModelSettings,
    Output,
    SemanticEmbeddingOutput,
    Task,
    TaskBatchSemanticEmbedding,
    TaskChat,
    TaskCompletion,
    TaskDetokenization,
    TaskExplanation,
    TaskInstructableEmbedding,
    TaskSemanticEmbedding,
    TaskTokenization,
    TokenizationOutput,
)


class Client:
    """
    Async client for the inference service.

    Args:
        base_url: Base URL of the service. Ignored if ``config`` is given.
        token: Default API token or ``TokenProvider``. Ignored if ``config`` is given.
        config: Complete client configuration
        http_client: Externally owned ``httpx.AsyncClient`` to send requests with

    A single request is sent per call; failures are never retried. Check
    ``error.retryable`` to decide whether to try again.

    Example:
        >>> async with Client("https://inference.example.com", token="...") as client:
        ...     output = await client.complete(TaskCompletion.from_text("An apple a day"), "luminous-base")
        ...     print(output.completion)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Union[str, TokenProvider, None] = None,
        config: Optional[ClientConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if config is None:
            config = ClientConfig(base_url=base_url or "", token=token)
        self.config = config
        self._token_provider = config.token_provider
        self._transport = HttpTransport(config, http_client=http_client)

    @classmethod
    def from_env(cls, http_client: Optional[httpx.AsyncClient] = None, **overrides) -> Client:
        """Create a client from ``INFERENCE_URL`` and ``PHARIA_AI_TOKEN``."""
        return cls(config=ClientConfig.from_env(**overrides), http_client=http_client)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._transport.close()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    # ============================================================
    # Generic execution
    # ============================================================

    async def execute(self, task: Task, model: str, how: Optional[How] = None) -> Output:
        """
        Execute ``task`` with ``model`` and wait for the complete output.

        Args:
            task: Any task variant
            model: Name of the model
            how: Execution policy; defaults to normal priority and the
                configured timeout

        Returns:
            The output type matching the task

        Raises:
            InvalidRequestError: before anything is sent, if the task is invalid
            ApiError: any other failure, classified
        """
        how = self._resolve_how(how)
        encoded = encode_task(task, model)
        deadline = how.deadline()
        body = await self._send(encoded, how, deadline)
        return decode_output(task, body)

    def stream(self, task: Union[TaskCompletion, TaskChat], model: str, how: Optional[How] = None) -> ChunkStream:
        """
        Execute ``task`` as a stream.

        The task is validated immediately; the request is sent on first
        iteration (or on entering the ``async with`` block). The deadline of
        ``how`` covers the whole stream.

        Raises:
            InvalidRequestError: if the task cannot be streamed
        """
        how = self._resolve_how(how)
        encoded = encode_task(task, model, stream=True)

        async def opener(deadline: Deadline) -> httpx.Response:
            headers = await deadline.run(self._headers(how))
            return await self._transport.open_stream(
                encoded, headers, deadline, params=how.request_params()
            )

        return ChunkStream(opener, self._protocol_for(task, model), how.deadline())

    async def list_models(self, how: Optional[How] = None) -> List[ModelSettings]:
        """List the models known to the service and their settings."""
        how = self._resolve_how(how)
        encoded = EncodedRequest("GET", "/model-settings")
        body = await self._send(encoded, how, how.deadline())
        return decode_model_settings(body)

    # ============================================================
    # Task shortcuts
    # ============================================================

    async def complete(self, task: TaskCompletion, model: str, how: Optional[How] = None) -> CompletionOutput:
        return await self.execute(task, model, how)

    async def chat(self, task: TaskChat, model: str, how: Optional[How] = None) -> ChatOutput:
        return await self.execute(task, model, how)

    async def semantic_embed(
        self, task: TaskSemanticEmbedding, model: str, how: Optional[How] = None
    ) -> SemanticEmbeddingOutput:
        return await self.execute(task, model, how)

    async def batch_semantic_embed(
        self, task: TaskBatchSemanticEmbedding, model: str, how: Optional[How] = None
    ) -> BatchSemanticEmbeddingOutput:
        return await self.execute(task, model, how)

    async def instructable_embed(
        self, task: TaskInstructableEmbedding, model: str, how: Optional[How] = None
    ) -> SemanticEmbeddingOutput:
        return await self.execute(task, model, how)

    async def tokenize(self, task: TaskTokenization, model: str, how: Optional[How] = None) -> TokenizationOutput:
        return await self.execute(task, model, how)

    async def detokenize(
        self, task: TaskDetokenization, model: str, how: Optional[How] = None
    ) -> DetokenizationOutput:
        return await self.execute(task, model, how)

    async def explain(self, task: TaskExplanation, model: str, how: Optional[How] = None) -> ExplanationOutput:
        return await self.execute(task, model, how)

    def stream_completion(self, task: TaskCompletion, model: str, how: Optional[How] = None) -> ChunkStream:
        return self.stream(task, model, how)

    def stream_chat(self, task: TaskChat, model: str, how: Optional[How] = None) -> ChunkStream:
        return self.stream(task, model, how)

    # ============================================================
    # Private methods
    # ============================================================

    def _resolve_how(self, how: Optional[How]) -> How:
        if how is None:
            return How(client_timeout=self.config.timeout)
        return how

    def _protocol_for(self, task: Union[TaskCompletion, TaskChat], model: str) -> StreamProtocol:
        if isinstance(task, TaskChat):
            return ChatProtocol(model, self.config.error_codes)
        return CompletionProtocol(model, self.config.error_codes)

    async def _headers(self, how: How) -> Dict[str, str]:
        default_token = None
        # a per-call token makes the default credential irrelevant
        if how.api_token is None and self._token_provider is not None:
            default_token = await self._token_provider.get_token()
        return how.request_headers(default_token)

    async def _send(self, encoded: EncodedRequest, how: How, deadline: Deadline):
        headers = await deadline.run(self._headers(how))
        return await self._transport.send(encoded, headers, deadline, params=how.request_params())
