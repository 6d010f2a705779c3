"""
luminous-client

Async Python client for the Luminous inference service.

Quick Start:
    from luminous_client import Client, Prompt, TaskCompletion

    async with Client("https://inference.example.com", token="...") as client:
        # Simple completion
        task = TaskCompletion.from_text("An apple a day", maximum_tokens=16)
        output = await client.complete(task, "luminous-base")
        print(output.completion)

        # Chat with streaming
        chat = TaskChat.with_message(Message.user("Tell me a story"))
        async with client.stream(chat, "llama-3.1-8b-instruct") as chunks:
            async for chunk in chunks:
                if isinstance(chunk, StreamDelta):
                    print(chunk.text, end="", flush=True)

    # Low priority, short deadline
    output = await client.complete(task, "luminous-base", How.nice(client_timeout=10))
"""

from .client import Client
from .config import ClientConfig, __version__
from .auth import LoginCredentials, StaticToken, TokenProvider
from .how import How, Priority
from .tracing import TraceContext
from .prompt import Modality, Prompt
from .logprobs import Distribution, Logprob, Logprobs
from .tasks import (
    MOST_LIKELY,
    BatchSemanticEmbeddingOutput,
    ChatOutput,
    ChatSampling,
    CompletionOutput,
    DetokenizationOutput,
    ExplanationOutput,
    ImageExplanation,
    ImageScore,
    Message,
    ModelSettings,
    PromptGranularity,
    Sampling,
    SemanticEmbeddingOutput,
    SemanticRepresentation,
    Stopping,
    TargetExplanation,
    TaskBatchSemanticEmbedding,
    TaskChat,
    TaskCompletion,
    TaskDetokenization,
    TaskExplanation,
    TaskInstructableEmbedding,
    TaskSemanticEmbedding,
    TaskTokenization,
    TextExplanation,
    TextScore,
    TokenizationOutput,
    Usage,
)
from .stream import ChunkStream, StreamDelta, StreamEnd, StreamStart, StreamUsage
from .errors import (
    ApiError,
    BusyError,
    UnavailableError,
    ModelNotFoundError,
    InvalidRequestError,
    DecodeError,
    HttpError,
    TooManyRequestsError,
    ClientTimeoutError,
    TransportError,
    ConfigurationError,
    ErrorCodeTable,
    DEFAULT_ERROR_CODES,
    classify_error,
    is_retryable_error,
)

__all__ = [
    # Client
    "Client",
    "ClientConfig",
    "LoginCredentials",
    "StaticToken",
    "TokenProvider",
    "How",
    "Priority",
    "TraceContext",
    # Tasks
    "Modality",
    "Prompt",
    "Logprobs",
    "Logprob",
    "Distribution",
    "Stopping",
    "Sampling",
    "ChatSampling",
    "MOST_LIKELY",
    "Message",
    "TaskCompletion",
    "TaskChat",
    "TaskSemanticEmbedding",
    "TaskBatchSemanticEmbedding",
    "TaskInstructableEmbedding",
    "TaskTokenization",
    "TaskDetokenization",
    "TaskExplanation",
    "SemanticRepresentation",
    "PromptGranularity",
    # Outputs
    "Usage",
    "CompletionOutput",
    "ChatOutput",
    "SemanticEmbeddingOutput",
    "BatchSemanticEmbeddingOutput",
    "TokenizationOutput",
    "DetokenizationOutput",
    "ExplanationOutput",
    "TextScore",
    "ImageScore",
    "TextExplanation",
    "ImageExplanation",
    "TargetExplanation",
    "ModelSettings",
    # Streaming
    "ChunkStream",
    "StreamStart",
    "StreamDelta",
    "StreamEnd",
    "StreamUsage",
    # Errors
    "ApiError",
    "BusyError",
    "UnavailableError",
    "ModelNotFoundError",
    "InvalidRequestError",
    "DecodeError",
    "HttpError",
    "TooManyRequestsError",
    "ClientTimeoutError",
    "TransportError",
    "ConfigurationError",
    "ErrorCodeTable",
    "DEFAULT_ERROR_CODES",
    "classify_error",
    "is_retryable_error",
    "__version__",
]
