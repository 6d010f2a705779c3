"""
luminous-client - Log Probabilities

Request modes and response types for token log-probabilities.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import DecodeError

MAX_TOP_LOGPROBS = 20


@dataclass(frozen=True)
class Logprobs:
    """
    Which log-probabilities to return with a completion or chat.

    Use ``Logprobs.none()``, ``Logprobs.sampled()`` or ``Logprobs.top(n)``.
    """
    mode: str = "none"
    top_n: int = 0

    NONE = "none"
    SAMPLED = "sampled"
    TOP = "top"

    @classmethod
    def none(cls) -> Logprobs:
        return cls(cls.NONE)

    @classmethod
    def sampled(cls) -> Logprobs:
        """Only the logprob of each token actually sampled into the output."""
        return cls(cls.SAMPLED)

    @classmethod
    def top(cls, n: int) -> Logprobs:
        """The sampled token plus the ``n`` most likely alternatives (0 to 20)."""
        return cls(cls.TOP, n)

    @property
    def requested(self) -> bool:
        return self.mode != self.NONE

    def top_logprobs(self) -> Optional[int]:
        """Value of the chat ``top_logprobs`` parameter."""
        return self.top_n if self.mode == self.TOP else None

    def completion_log_probs(self) -> Optional[int]:
        """Value of the completion ``log_probs`` parameter (0 means sampled only)."""
        if self.mode == self.NONE:
            return None
        return self.top_n if self.mode == self.TOP else 0


@dataclass(frozen=True)
class Logprob:
    """A token and its logarithmic probability."""
    token: str
    logprob: float


@dataclass(frozen=True)
class Distribution:
    """Logprob of a sampled token plus the ranked alternatives, if requested."""
    sampled: Logprob
    top: List[Logprob] = field(default_factory=list)


def _logprob_from_dict(data: Any) -> Logprob:
    if not isinstance(data, dict):
        raise DecodeError("logprob entry is not an object", payload=repr(data))
    token = data.get("token")
    value = data.get("logprob")
    if not isinstance(token, str) or not isinstance(value, (int, float)):
        raise DecodeError("logprob entry needs 'token' and 'logprob'", payload=repr(data))
    return Logprob(token=token, logprob=float(value))


def parse_chat_logprobs(data: Any) -> Optional[List[Distribution]]:
    """
    Parse the ``logprobs`` object of a chat choice.

    ``None`` in, ``None`` out: the field is absent when logprobs were not
    requested.
    """
    if data is None:
        return None
    if not isinstance(data, dict) or not isinstance(data.get("content", []), list):
        raise DecodeError("chat logprobs must hold a 'content' list", payload=repr(data))
    distributions = []
    for entry in data.get("content") or []:
        top = entry.get("top_logprobs") or [] if isinstance(entry, dict) else []
        distributions.append(
            Distribution(
                sampled=_logprob_from_dict(entry),
                top=[_logprob_from_dict(item) for item in top],
            )
        )
    return distributions


def parse_completion_logprobs(
    log_probs: Any,
    completion_tokens: Any
) -> Optional[List[Distribution]]:
    """
    Parse the completion ``log_probs`` list.

    Each entry maps candidate tokens to logprobs; the sampled token for the
    entry is taken from ``completion_tokens`` at the same position.
    """
    if log_probs is None:
        return None
    if not isinstance(log_probs, list):
        raise DecodeError("'log_probs' must be a list", payload=repr(log_probs))
    tokens = completion_tokens if isinstance(completion_tokens, list) else []

    distributions = []
    for position, candidates in enumerate(log_probs):
        if not isinstance(candidates, dict):
            raise DecodeError("'log_probs' entries must be objects", payload=repr(candidates))
        ranked = sorted(_candidates(candidates), key=lambda lp: lp.logprob, reverse=True)
        token = tokens[position] if position < len(tokens) else None
        if token is not None and token in candidates:
            sampled = Logprob(token, float(candidates[token]))
            alternatives = [lp for lp in ranked if lp.token != token]
        elif ranked:
            sampled, alternatives = ranked[0], ranked[1:]
        else:
            raise DecodeError("empty 'log_probs' entry", payload=repr(candidates))
        distributions.append(Distribution(sampled=sampled, top=alternatives))
    return distributions


def _candidates(candidates: Dict[str, Any]) -> List[Logprob]:
    result = []
    for token, value in candidates.items():
        if not isinstance(value, (int, float)):
            raise DecodeError("logprob values must be numbers", payload=repr(candidates))
        result.append(Logprob(token, float(value)))
    return result
