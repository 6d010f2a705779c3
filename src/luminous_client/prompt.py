"""
luminous-client - Prompt

A prompt is an ordered list of items. Usually it holds a single text item,
multimodal models also accept images.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Tuple


@dataclass(frozen=True)
class Modality:
    """One prompt item: ``text`` or an already encoded ``image``."""
    type: str
    data: str

    TEXT = "text"
    IMAGE = "image"

    @classmethod
    def text(cls, text: str) -> Modality:
        return cls(type=cls.TEXT, data=text)

    @classmethod
    def image(cls, encoded: str) -> Modality:
        """Image item from a base64 string the service accepts (PNG recommended)."""
        return cls(type=cls.IMAGE, data=encoded)

    @classmethod
    def image_from_bytes(cls, image: bytes) -> Modality:
        """
        Image item from the binary representation of a preprocessed image.

        The service only looks at square images; cropping and format
        conversion have to happen before this call.
        """
        return cls(type=cls.IMAGE, data=base64.b64encode(image).decode("ascii"))

    @property
    def is_text(self) -> bool:
        return self.type == self.TEXT

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "data": self.data}


@dataclass(frozen=True)
class Prompt:
    """An ordered, immutable sequence of prompt items."""
    items: Tuple[Modality, ...] = ()

    @classmethod
    def from_text(cls, text: str) -> Prompt:
        return cls((Modality.text(text),))

    @classmethod
    def from_items(cls, items: Iterable[Modality]) -> Prompt:
        return cls(tuple(items))

    @classmethod
    def empty(cls) -> Prompt:
        return cls()

    def __len__(self) -> int:
        return len(self.items)

    def join_consecutive_text_items(self, separator: str = "") -> Prompt:
        """
        Merge runs of consecutive text items into one item.

        Tokenizing two partial strings does not necessarily produce the same
        tokens as tokenizing them joined, so programmatically assembled
        prompts are often better sent as one text item.
        """
        merged: List[Modality] = []
        for item in self.items:
            if merged and item.is_text and merged[-1].is_text:
                merged[-1] = Modality.text(merged[-1].data + separator + item.data)
            else:
                merged.append(item)
        return Prompt(tuple(merged))

    def to_list(self) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self.items]
