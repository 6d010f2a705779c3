"""
luminous-client - Task Encoding Tests

Verifies:
- Each task kind is encoded to its route and JSON body
- Unset optional parameters are omitted
- Infeasible task configurations are rejected before anything is sent
- Success bodies decode into the matching output types
"""

import json

import pytest

from luminous_client import (
    ChatSampling,
    Logprobs,
    Message,
    Modality,
    Prompt,
    PromptGranularity,
    Sampling,
    SemanticRepresentation,
    Stopping,
    TaskBatchSemanticEmbedding,
    TaskChat,
    TaskCompletion,
    TaskDetokenization,
    TaskExplanation,
    TaskInstructableEmbedding,
    TaskSemanticEmbedding,
    TaskTokenization,
)
from luminous_client.encoding import decode_model_settings, decode_output, encode_task
from luminous_client.errors import DecodeError, InvalidRequestError
from luminous_client.tasks import (
    ImageExplanation,
    TargetExplanation,
    TextExplanation,
)


# ============================================================
# Encoding
# ============================================================

class TestCompletionEncoding:
    """Tests for completion requests."""

    def test_simple_completion(self):
        """Model name and a single text prompt item end up in the body."""
        task = TaskCompletion.from_text("An apple a day", maximum_tokens=20)

        request = encode_task(task, "luminous-base")

        assert request.method == "POST"
        assert request.path == "/complete"
        assert request.body["model"] == "luminous-base"
        assert request.body["prompt"] == [{"type": "text", "data": "An apple a day"}]
        assert request.body["maximum_tokens"] == 20

    def test_defaults_are_omitted(self):
        """Default sampling sends no sampling parameters."""
        body = encode_task(TaskCompletion.from_text("Hi"), "luminous-base").body

        assert body == {"model": "luminous-base", "prompt": [{"type": "text", "data": "Hi"}]}

    def test_body_is_json_serializable(self):
        task = (
            TaskCompletion.from_text("Hi", maximum_tokens=5)
            .with_stop_sequences(["\n"])
            .with_sampling(Sampling(temperature=0.5, top_k=3, complete_with_one_of=("yes", "no")))
            .with_logprobs(Logprobs.top(2))
        )

        body = json.loads(json.dumps(encode_task(task, "luminous-base").body))

        assert body["stop_sequences"] == ["\n"]
        assert body["temperature"] == 0.5
        assert body["top_k"] == 3
        assert body["completion_bias_inclusion"] == ["yes", "no"]
        assert body["log_probs"] == 2
        assert body["tokens"] is True

    def test_sampled_logprobs(self):
        """Sampled-only logprobs are requested as zero alternatives."""
        task = TaskCompletion.from_text("Hi").with_logprobs(Logprobs.sampled())
        assert encode_task(task, "m").body["log_probs"] == 0

    def test_special_tokens(self):
        task = TaskCompletion.from_text("Hi").with_special_tokens()
        assert encode_task(task, "m").body["raw_completion"] is True

    def test_empty_prompt_is_kept(self):
        """An empty prompt is legal and encodes to an empty list."""
        task = TaskCompletion(prompt=Prompt.empty())
        assert encode_task(task, "m").body["prompt"] == []

    def test_stream_flag(self):
        request = encode_task(TaskCompletion.from_text("Hi"), "m", stream=True)
        assert request.stream is True
        assert request.body["stream"] is True

    def test_multimodal_prompt(self):
        prompt = Prompt.from_items([Modality.image_from_bytes(b"\x89PNG"), Modality.text("What is this?")])
        body = encode_task(TaskCompletion(prompt=prompt), "m").body
        assert body["prompt"][0] == {"type": "image", "data": "iVBORw=="}
        assert body["prompt"][1]["type"] == "text"


class TestChatEncoding:
    """Tests for chat requests."""

    def test_chat_body(self):
        task = TaskChat.with_messages([Message.system("Be brief."), Message.user("Hello")]).with_maximum_tokens(64)

        request = encode_task(task, "llama-3.1-8b-instruct")

        assert request.path == "/chat/completions"
        assert request.body == {
            "model": "llama-3.1-8b-instruct",
            "messages": [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Hello"},
            ],
            "max_tokens": 64,
        }

    def test_chat_logprobs(self):
        task = TaskChat.with_message(Message.user("Hi")).with_logprobs(Logprobs.top(3))
        body = encode_task(task, "m").body
        assert body["logprobs"] is True
        assert body["top_logprobs"] == 3

    def test_chat_stream_requests_usage(self):
        """Chat streams ask for the trailing usage record."""
        body = encode_task(TaskChat.with_message(Message.user("Hi")), "m", stream=True).body
        assert body["stream"] is True
        assert body["stream_options"] == {"include_usage": True}

    def test_push_message_returns_new_task(self):
        task = TaskChat.with_message(Message.user("Hi"))
        longer = task.push_message(Message.assistant("Hello!"))
        assert len(task.messages) == 1
        assert len(longer.messages) == 2


class TestOtherTaskEncoding:
    """Tests for embeddings, tokenization, detokenization and explanation."""

    def test_semantic_embed(self):
        task = TaskSemanticEmbedding(
            prompt=Prompt.from_text("Hello"),
            representation=SemanticRepresentation.QUERY,
            compress_to_size=128,
        )
        request = encode_task(task, "luminous-base")
        assert request.path == "/semantic_embed"
        assert request.body["representation"] == "query"
        assert request.body["compress_to_size"] == 128

    def test_batch_semantic_embed(self):
        task = TaskBatchSemanticEmbedding(prompts=(Prompt.from_text("a"), Prompt.from_text("b")))
        request = encode_task(task, "luminous-base")
        assert request.path == "/batch_semantic_embed"
        assert len(request.body["prompts"]) == 2
        assert "compress_to_size" not in request.body

    def test_instructable_embed_uses_input(self):
        task = TaskInstructableEmbedding(instruction="Represent the question", prompt=Prompt.from_text("Why?"))
        request = encode_task(task, "pharia-1-embedding")
        assert request.path == "/instructable_embed"
        assert request.body["input"] == [{"type": "text", "data": "Why?"}]
        assert "prompt" not in request.body
        assert "normalize" not in request.body

    def test_tokenize(self):
        request = encode_task(TaskTokenization("Hello", tokens=True, token_ids=False), "m")
        assert request.path == "/tokenize"
        assert request.body == {"model": "m", "prompt": "Hello", "tokens": True, "token_ids": False}

    def test_detokenize(self):
        request = encode_task(TaskDetokenization(token_ids=(556, 48741)), "m")
        assert request.path == "/detokenize"
        assert request.body["token_ids"] == [556, 48741]

    def test_explanation_granularity(self):
        task = TaskExplanation(Prompt.from_text("An apple a day"), " keeps", PromptGranularity.WORD)
        body = encode_task(task, "m").body
        assert body["prompt_granularity"] == {"type": "word"}

    def test_explanation_auto_granularity_omitted(self):
        body = encode_task(TaskExplanation(Prompt.from_text("a"), "b"), "m").body
        assert "prompt_granularity" not in body

    def test_not_a_task(self):
        with pytest.raises(TypeError):
            encode_task("An apple a day", "m")


class TestValidation:
    """Infeasible tasks are rejected at encoding time."""

    def test_chat_rejects_complete_with_one_of(self):
        task = TaskChat.with_message(Message.user("Hi")).with_sampling(Sampling(complete_with_one_of=("a",)))
        with pytest.raises(InvalidRequestError) as exc:
            encode_task(task, "m")
        assert exc.value.param == "complete_with_one_of"

    def test_chat_rejects_top_k(self):
        task = TaskChat.with_message(Message.user("Hi")).with_sampling(Sampling(top_k=5))
        with pytest.raises(InvalidRequestError) as exc:
            encode_task(task, "m")
        assert exc.value.param == "top_k"

    def test_chat_accepts_chat_sampling(self):
        task = TaskChat.with_message(Message.user("Hi")).with_sampling(ChatSampling(temperature=0.2))
        assert encode_task(task, "m").body["temperature"] == 0.2

    def test_chat_needs_messages(self):
        with pytest.raises(InvalidRequestError):
            encode_task(TaskChat.with_messages([]), "m")

    def test_too_many_top_logprobs(self):
        task = TaskCompletion.from_text("Hi").with_logprobs(Logprobs.top(21))
        with pytest.raises(InvalidRequestError):
            encode_task(task, "m")

    def test_top_logprobs_bounds_accepted(self):
        for n in (0, 20):
            task = TaskCompletion.from_text("Hi").with_logprobs(Logprobs.top(n))
            assert encode_task(task, "m").body["log_probs"] == n

    def test_maximum_tokens_must_be_positive(self):
        task = TaskCompletion(prompt=Prompt.from_text("Hi"), stopping=Stopping(maximum_tokens=0))
        with pytest.raises(InvalidRequestError):
            encode_task(task, "m")

    def test_embedding_cannot_stream(self):
        task = TaskSemanticEmbedding(prompt=Prompt.from_text("Hi"))
        with pytest.raises(InvalidRequestError) as exc:
            encode_task(task, "m", stream=True)
        assert exc.value.param == "stream"
        assert exc.value.retryable is False


# ============================================================
# Decoding
# ============================================================

class TestDecoding:
    """Tests for success body decoding."""

    def test_completion(self):
        body = {"completions": [{"completion": " keeps the doctor away", "finish_reason": "stop"}]}

        output = decode_output(TaskCompletion.from_text("An apple a day"), body)

        assert output.completion == " keeps the doctor away"
        assert output.finish_reason == "stop"
        assert output.logprobs is None
        assert output.usage is None

    def test_completion_usage_and_logprobs(self):
        body = {
            "model_version": "2024-01",
            "num_tokens_prompt_total": 4,
            "num_tokens_generated": 2,
            "completions": [{
                "completion": " keeps",
                "finish_reason": "maximum_tokens",
                "completion_tokens": [" keeps", " the"],
                "log_probs": [{" keeps": -0.1, " is": -2.5}, {" the": -0.3}],
            }],
        }

        output = decode_output(TaskCompletion.from_text("x"), body)

        assert output.usage.prompt_tokens == 4
        assert output.usage.total_tokens == 6
        assert output.model_version == "2024-01"
        assert output.logprobs[0].sampled.token == " keeps"
        assert [lp.token for lp in output.logprobs[0].top] == [" is"]

    def test_raw_completion_with_special_tokens(self):
        body = {"completions": [{
            "completion": " away",
            "raw_completion": " away<|endoftext|>",
            "finish_reason": "end_of_text",
        }]}
        task = TaskCompletion.from_text("x").with_special_tokens()
        assert decode_output(task, body).completion == " away<|endoftext|>"

    def test_chat(self):
        body = {
            "choices": [{
                "message": {"role": "assistant", "content": "Hello!"},
                "finish_reason": "stop",
                "logprobs": {"content": [{
                    "token": "Hello",
                    "logprob": -0.2,
                    "top_logprobs": [{"token": "Hello", "logprob": -0.2}, {"token": "Hi", "logprob": -1.9}],
                }]},
            }],
            "usage": {"prompt_tokens": 8, "completion_tokens": 2},
        }

        output = decode_output(TaskChat.with_message(Message.user("Hi")), body)

        assert output.message == Message.assistant("Hello!")
        assert output.usage.completion_tokens == 2
        assert output.logprobs[0].top[1].token == "Hi"

    def test_embeddings(self):
        task = TaskSemanticEmbedding(prompt=Prompt.from_text("x"))
        assert decode_output(task, {"embedding": [0.5, -1, 2]}).embedding == [0.5, -1.0, 2.0]

        batch = TaskBatchSemanticEmbedding(prompts=(Prompt.from_text("x"),))
        assert decode_output(batch, {"embeddings": [[1, 2]]}).embeddings == [[1.0, 2.0]]

    def test_tokenization(self):
        output = decode_output(TaskTokenization("Hello"), {"tokens": ["Hel", "lo"], "token_ids": [1, 2]})
        assert output.tokens == ["Hel", "lo"]
        assert output.token_ids == [1, 2]

    def test_detokenization(self):
        assert decode_output(TaskDetokenization((1, 2)), {"result": "Hello"}).result == "Hello"

    def test_explanation(self):
        body = {"explanations": [{
            "target": " keeps",
            "items": [
                {"type": "text", "scores": [{"start": 0, "length": 2, "score": 0.5}]},
                {"type": "image", "scores": [{
                    "rect": {"left": 0.1, "top": 0.2, "width": 0.3, "height": 0.4}, "score": 1,
                }]},
                {"type": "target", "scores": []},
            ],
        }]}

        output = decode_output(TaskExplanation(Prompt.from_text("x"), " keeps"), body)

        assert isinstance(output.items[0], TextExplanation)
        assert isinstance(output.items[1], ImageExplanation)
        assert isinstance(output.items[2], TargetExplanation)
        assert output.items[1].scores[0].height == 0.4

    def test_missing_field_is_decode_error(self):
        with pytest.raises(DecodeError):
            decode_output(TaskCompletion.from_text("x"), {"completions": [{"finish_reason": "stop"}]})

    def test_wrong_type_is_decode_error(self):
        with pytest.raises(DecodeError):
            decode_output(TaskDetokenization((1,)), {"result": 42})

    def test_non_object_body(self):
        with pytest.raises(DecodeError):
            decode_output(TaskDetokenization((1,)), ["Hello"])

    def test_model_settings(self):
        settings = decode_model_settings([
            {"name": "luminous-base", "status": "available", "chat": False, "max_context_size": 2048},
            {"name": "llama-3.1-8b-instruct", "status": "unavailable", "chat": True},
        ])
        assert settings[0].available
        assert settings[0].max_context_size == 2048
        assert not settings[1].available
        assert settings[1].chat
