"""
luminous-client - Task Encoding

Pure mapping between task variants and the service's wire format.

``encode_task`` turns a task into the method, path and JSON body of one
request. ``decode_output`` turns a success body back into the output type
of the task. Neither performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type

from .errors import DecodeError, InvalidRequestError
from .logprobs import MAX_TOP_LOGPROBS, Logprobs, parse_chat_logprobs, parse_completion_logprobs
from .tasks import (
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
    Output,
    PromptGranularity,
    Sampling,
    SemanticEmbeddingOutput,
    TargetExplanation,
    Task,
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

STREAMABLE_TASKS = (TaskCompletion, TaskChat)


@dataclass(frozen=True)
class EncodedRequest:
    """Method, path and JSON body of one request."""
    method: str
    path: str
    body: Optional[Dict[str, Any]] = None
    stream: bool = False
    model: Optional[str] = None
    params: Dict[str, str] = field(default_factory=dict)


def _drop_empty(body: Dict[str, Any]) -> Dict[str, Any]:
    """Omit unset optional parameters (None, empty sequences, False flags)."""
    return {
        key: value for key, value in body.items()
        if value is not None and value is not False and value != [] and value != ()
    }


# ============================================================
# Validation
# ============================================================

def _validate_logprobs(logprobs: Logprobs) -> None:
    if logprobs.mode == Logprobs.TOP and not 0 <= logprobs.top_n <= MAX_TOP_LOGPROBS:
        raise InvalidRequestError(
            f"top logprobs must be between 0 and {MAX_TOP_LOGPROBS}, got {logprobs.top_n}",
            param="logprobs",
        )


def _validate_maximum_tokens(maximum_tokens: Optional[int]) -> None:
    if maximum_tokens is not None and maximum_tokens < 1:
        raise InvalidRequestError("maximum_tokens must be at least 1", param="maximum_tokens")


def validate_task(task: Task, stream: bool = False) -> None:
    """
    Reject task configurations the service cannot execute.

    Raises:
        InvalidRequestError: before any request is sent
    """
    if stream and not isinstance(task, STREAMABLE_TASKS):
        raise InvalidRequestError(
            f"{type(task).__name__} does not support streaming", param="stream"
        )

    if isinstance(task, TaskCompletion):
        _validate_maximum_tokens(task.stopping.maximum_tokens)
        _validate_logprobs(task.logprobs)
    elif isinstance(task, TaskChat):
        _validate_maximum_tokens(task.stopping.maximum_tokens)
        _validate_logprobs(task.logprobs)
        sampling = task.sampling
        if isinstance(sampling, Sampling):
            if sampling.complete_with_one_of:
                raise InvalidRequestError(
                    "complete_with_one_of is not supported for chat",
                    param="complete_with_one_of",
                )
            if sampling.top_k is not None:
                raise InvalidRequestError("top_k is not supported for chat", param="top_k")
        if not task.messages:
            raise InvalidRequestError("chat needs at least one message", param="messages")


# ============================================================
# Encoding
# ============================================================

def _completion_body(model: str, task: TaskCompletion, stream: bool) -> Dict[str, Any]:
    sampling = task.sampling
    log_probs = task.logprobs.completion_log_probs()
    body = {
        "model": model,
        "prompt": task.prompt.to_list(),
        "maximum_tokens": task.stopping.maximum_tokens,
        "stop_sequences": list(task.stopping.stop_sequences),
        "temperature": sampling.temperature,
        "top_k": sampling.top_k,
        "top_p": sampling.top_p,
        "frequency_penalty": sampling.frequency_penalty,
        "presence_penalty": sampling.presence_penalty,
        "completion_bias_inclusion": list(sampling.complete_with_one_of),
        "log_probs": log_probs,
        "tokens": log_probs is not None,
        "raw_completion": task.special_tokens,
        "stream": stream,
    }
    body = _drop_empty(body)
    # the prompt is required even when empty
    body["prompt"] = task.prompt.to_list()
    return body


def _chat_body(model: str, task: TaskChat, stream: bool) -> Dict[str, Any]:
    sampling = task.sampling
    body = _drop_empty({
        "model": model,
        "messages": [message.to_dict() for message in task.messages],
        "max_tokens": task.stopping.maximum_tokens,
        "stop": list(task.stopping.stop_sequences),
        "temperature": sampling.temperature,
        "top_p": sampling.top_p,
        "frequency_penalty": sampling.frequency_penalty,
        "presence_penalty": sampling.presence_penalty,
        "logprobs": task.logprobs.requested,
        "top_logprobs": task.logprobs.top_logprobs(),
        "stream": stream,
    })
    if stream:
        body["stream_options"] = {"include_usage": True}
    return body


def _semantic_embed_body(model: str, task: TaskSemanticEmbedding) -> Dict[str, Any]:
    body = {
        "model": model,
        "prompt": task.prompt.to_list(),
        "representation": task.representation.value,
    }
    if task.compress_to_size is not None:
        body["compress_to_size"] = task.compress_to_size
    return body


def _batch_semantic_embed_body(model: str, task: TaskBatchSemanticEmbedding) -> Dict[str, Any]:
    body = {
        "model": model,
        "prompts": [prompt.to_list() for prompt in task.prompts],
        "representation": task.representation.value,
    }
    if task.compress_to_size is not None:
        body["compress_to_size"] = task.compress_to_size
    return body


def _instructable_embed_body(model: str, task: TaskInstructableEmbedding) -> Dict[str, Any]:
    body = {
        "model": model,
        "instruction": task.instruction,
        "input": task.prompt.to_list(),
    }
    if task.normalize is not None:
        body["normalize"] = task.normalize
    return body


def _explanation_body(model: str, task: TaskExplanation) -> Dict[str, Any]:
    body = {
        "model": model,
        "prompt": task.prompt.to_list(),
        "target": task.target,
    }
    if task.prompt_granularity != PromptGranularity.AUTO:
        body["prompt_granularity"] = {"type": task.prompt_granularity.value}
    return body


def encode_task(task: Task, model: str, stream: bool = False) -> EncodedRequest:
    """
    Encode a task for ``model``.

    Args:
        task: Any task variant
        model: Name of the model to execute the task with
        stream: Request an event stream instead of a single body

    Returns:
        EncodedRequest ready to be sent by the transport

    Raises:
        InvalidRequestError: if the task is not executable as configured
        TypeError: if ``task`` is not a task variant
    """
    validate_task(task, stream)

    if isinstance(task, TaskCompletion):
        return EncodedRequest("POST", "/complete", _completion_body(model, task, stream), stream, model)
    if isinstance(task, TaskChat):
        return EncodedRequest("POST", "/chat/completions", _chat_body(model, task, stream), stream, model)
    if isinstance(task, TaskSemanticEmbedding):
        return EncodedRequest("POST", "/semantic_embed", _semantic_embed_body(model, task), model=model)
    if isinstance(task, TaskBatchSemanticEmbedding):
        return EncodedRequest(
            "POST", "/batch_semantic_embed", _batch_semantic_embed_body(model, task), model=model
        )
    if isinstance(task, TaskInstructableEmbedding):
        return EncodedRequest(
            "POST", "/instructable_embed", _instructable_embed_body(model, task), model=model
        )
    if isinstance(task, TaskTokenization):
        body = {
            "model": model,
            "prompt": task.prompt,
            "tokens": task.tokens,
            "token_ids": task.token_ids,
        }
        return EncodedRequest("POST", "/tokenize", body, model=model)
    if isinstance(task, TaskDetokenization):
        body = {"model": model, "token_ids": list(task.token_ids)}
        return EncodedRequest("POST", "/detokenize", body, model=model)
    if isinstance(task, TaskExplanation):
        return EncodedRequest("POST", "/explain", _explanation_body(model, task), model=model)

    raise TypeError(f"Not a task: {type(task).__name__}")


# ============================================================
# Decoding
# ============================================================

_MISSING = object()


def require(data: Any, key: str, expected: Any, context: str) -> Any:
    """Fetch ``data[key]`` and check its type, raising DecodeError otherwise."""
    value = data.get(key, _MISSING) if isinstance(data, dict) else _MISSING
    if value is _MISSING:
        raise DecodeError(f"{context}: missing field {key!r}", payload=repr(data)[:500])
    if not isinstance(value, expected) or (expected is not bool and isinstance(value, bool)):
        raise DecodeError(
            f"{context}: field {key!r} has unexpected type {type(value).__name__}",
            payload=repr(data)[:500],
        )
    return value


def _numbers(values: Any, context: str) -> List[float]:
    if not isinstance(values, list) or not all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in values
    ):
        raise DecodeError(f"{context}: expected a list of numbers")
    return [float(v) for v in values]


def parse_usage(data: Any, context: str = "usage") -> Usage:
    """Parse chat style ``{"prompt_tokens", "completion_tokens"}`` counts."""
    return Usage(
        prompt_tokens=require(data, "prompt_tokens", int, context),
        completion_tokens=require(data, "completion_tokens", int, context),
    )


def parse_completion_usage(data: Any, context: str = "completion usage") -> Usage:
    """Parse completion style ``num_tokens_prompt_total`` / ``num_tokens_generated``."""
    return Usage(
        prompt_tokens=require(data, "num_tokens_prompt_total", int, context),
        completion_tokens=require(data, "num_tokens_generated", int, context),
    )


def _decode_completion(task: TaskCompletion, body: Dict[str, Any]) -> CompletionOutput:
    completions = require(body, "completions", list, "completion response")
    if not completions:
        raise DecodeError("completion response: 'completions' is empty", payload=repr(body)[:500])
    best = completions[0]
    completion = require(best, "completion", str, "completion")
    if task.special_tokens and isinstance(best.get("raw_completion"), str):
        completion = best["raw_completion"]

    usage = None
    if "num_tokens_prompt_total" in body or "num_tokens_generated" in body:
        usage = parse_completion_usage(body)

    model_version = body.get("model_version")
    return CompletionOutput(
        completion=completion,
        finish_reason=require(best, "finish_reason", str, "completion"),
        logprobs=parse_completion_logprobs(best.get("log_probs"), best.get("completion_tokens")),
        usage=usage,
        model_version=model_version if isinstance(model_version, str) else None,
    )


def _decode_chat(task: TaskChat, body: Dict[str, Any]) -> ChatOutput:
    choices = require(body, "choices", list, "chat response")
    if not choices:
        raise DecodeError("chat response: 'choices' is empty", payload=repr(body)[:500])
    choice = choices[0]
    message = require(choice, "message", dict, "chat choice")
    usage = parse_usage(body["usage"]) if isinstance(body.get("usage"), dict) else None
    return ChatOutput(
        message=Message(
            role=require(message, "role", str, "chat message"),
            content=require(message, "content", str, "chat message"),
        ),
        finish_reason=require(choice, "finish_reason", str, "chat choice"),
        logprobs=parse_chat_logprobs(choice.get("logprobs")),
        usage=usage,
    )


def _decode_text_scores(scores: Any) -> List[TextScore]:
    if not isinstance(scores, list):
        raise DecodeError("explanation: 'scores' must be a list")
    return [
        TextScore(
            start=require(score, "start", int, "text score"),
            length=require(score, "length", int, "text score"),
            score=float(require(score, "score", (int, float), "text score")),
        )
        for score in scores
    ]


def _decode_image_scores(scores: Any) -> List[ImageScore]:
    if not isinstance(scores, list):
        raise DecodeError("explanation: 'scores' must be a list")
    result = []
    for score in scores:
        rect = require(score, "rect", dict, "image score")
        result.append(
            ImageScore(
                left=float(require(rect, "left", (int, float), "image rect")),
                top=float(require(rect, "top", (int, float), "image rect")),
                width=float(require(rect, "width", (int, float), "image rect")),
                height=float(require(rect, "height", (int, float), "image rect")),
                score=float(require(score, "score", (int, float), "image score")),
            )
        )
    return result


def _decode_explanation(task: TaskExplanation, body: Dict[str, Any]) -> ExplanationOutput:
    explanations = require(body, "explanations", list, "explanation response")
    if not explanations:
        raise DecodeError("explanation response: 'explanations' is empty", payload=repr(body)[:500])
    items = []
    for item in require(explanations[-1], "items", list, "explanation"):
        kind = require(item, "type", str, "explanation item")
        if kind == "text":
            items.append(TextExplanation(_decode_text_scores(item.get("scores"))))
        elif kind == "image":
            items.append(ImageExplanation(_decode_image_scores(item.get("scores"))))
        elif kind == "target":
            items.append(TargetExplanation(_decode_text_scores(item.get("scores"))))
        else:
            raise DecodeError(f"explanation: unknown item type {kind!r}", payload=repr(item)[:500])
    return ExplanationOutput(items=items)


def _decode_tokenization(task: TaskTokenization, body: Dict[str, Any]) -> TokenizationOutput:
    tokens = body.get("tokens")
    token_ids = body.get("token_ids")
    if tokens is not None and not isinstance(tokens, list):
        raise DecodeError("tokenize response: 'tokens' must be a list")
    if token_ids is not None and not isinstance(token_ids, list):
        raise DecodeError("tokenize response: 'token_ids' must be a list")
    return TokenizationOutput(tokens=tokens, token_ids=token_ids)


_DECODERS: Dict[Type[Any], Callable[[Any, Dict[str, Any]], Output]] = {
    TaskCompletion: _decode_completion,
    TaskChat: _decode_chat,
    TaskSemanticEmbedding: lambda task, body: SemanticEmbeddingOutput(
        _numbers(require(body, "embedding", list, "embedding response"), "embedding")
    ),
    TaskInstructableEmbedding: lambda task, body: SemanticEmbeddingOutput(
        _numbers(require(body, "embedding", list, "embedding response"), "embedding")
    ),
    TaskBatchSemanticEmbedding: lambda task, body: BatchSemanticEmbeddingOutput([
        _numbers(embedding, "embeddings")
        for embedding in require(body, "embeddings", list, "batch embedding response")
    ]),
    TaskTokenization: _decode_tokenization,
    TaskDetokenization: lambda task, body: DetokenizationOutput(
        require(body, "result", str, "detokenize response")
    ),
    TaskExplanation: _decode_explanation,
}


def decode_output(task: Task, body: Any) -> Output:
    """
    Decode a success body into the output type of ``task``.

    Raises:
        DecodeError: if the body does not have the expected shape
    """
    decoder = _DECODERS.get(type(task))
    if decoder is None:
        raise TypeError(f"Not a task: {type(task).__name__}")
    if not isinstance(body, dict):
        raise DecodeError(
            f"{type(task).__name__}: expected a JSON object", payload=repr(body)[:500]
        )
    return decoder(task, body)


def decode_model_settings(body: Any) -> List[ModelSettings]:
    """Decode the ``/model-settings`` listing."""
    if not isinstance(body, list):
        raise DecodeError("model settings: expected a JSON list", payload=repr(body)[:500])
    return [
        ModelSettings(
            name=require(entry, "name", str, "model settings"),
            status=require(entry, "status", str, "model settings"),
            description=entry.get("description", ""),
            chat=bool(entry.get("chat", False)),
            completion_type=entry.get("completion_type", "none"),
            embedding_type=entry.get("embedding_type", "none"),
            max_context_size=entry.get("max_context_size", 0),
            multimodal=bool(entry.get("multimodal", False)),
            aligned=bool(entry.get("aligned", False)),
            worker_type=entry.get("worker_type"),
            prompt_template=entry.get("prompt_template", ""),
        )
        for entry in body
    ]
