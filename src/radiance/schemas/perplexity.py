"""Pydantic models for the Perplexity proxy route."""

from __future__ import annotations

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class InvalidPromptError(ValueError):
    """Raised when a chat request cannot be resolved to a prompt shape."""


class ChatTurn(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class PlainPrompt(BaseModel):
    kind: Literal["plain"] = "plain"
    system_prompt: str
    user_prompt: str

    def messages(self) -> List[Dict[str, Any]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_prompt},
        ]


class ImagePrompt(BaseModel):
    kind: Literal["image"] = "image"
    system_prompt: str
    content: List[Dict[str, Any]]

    def messages(self) -> List[Dict[str, Any]]:
        return [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.content},
        ]


class HistoryPrompt(BaseModel):
    kind: Literal["history"] = "history"
    system_prompt: str
    turns: List[ChatTurn]

    def messages(self) -> List[Dict[str, Any]]:
        return [{"role": "system", "content": self.system_prompt}] + [
            turn.model_dump() for turn in self.turns
        ]


PromptVariant = Annotated[
    Union[PlainPrompt, ImagePrompt, HistoryPrompt], Field(discriminator="kind")
]


class PerplexityChatRequest(BaseModel):
    """Incoming request for the Perplexity proxy."""

    model: Optional[str] = None
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    user_prompt: Union[str, List[Dict[str, Any]], None] = Field(
        default=None, alias="userPrompt"
    )
    chat_history: Optional[List[ChatTurn]] = Field(default=None, alias="chatHistory")
    streaming: bool = False
    has_image_url: bool = Field(default=False, alias="hasImageUrl")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def resolve(self, history_limit: int = 10) -> PromptVariant:
        """Pick the prompt shape for this request.

        An image request wins over history; history is used only when it has
        at least one turn. The newest ``history_limit`` turns are kept and the
        user prompt is appended unless it is already the final turn.
        """

        if not self.model or not self.system_prompt:
            raise InvalidPromptError("Missing required parameters")

        if self.has_image_url:
            return ImagePrompt(
                system_prompt=self.system_prompt,
                content=_parse_content_parts(self.user_prompt),
            )

        if self.chat_history:
            turns = list(self.chat_history[-history_limit:])
            if isinstance(self.user_prompt, str) and self.user_prompt:
                last = turns[-1]
                if not (last.role == "user" and last.content == self.user_prompt):
                    turns.append(ChatTurn(role="user", content=self.user_prompt))
            elif turns[-1].role != "user":
                raise InvalidPromptError("Missing required parameters")
            return HistoryPrompt(system_prompt=self.system_prompt, turns=turns)

        if not self.user_prompt:
            raise InvalidPromptError("Missing required parameters")
        if not isinstance(self.user_prompt, str):
            raise InvalidPromptError(
                "userPrompt must be a string unless hasImageUrl is set"
            )
        return PlainPrompt(system_prompt=self.system_prompt, user_prompt=self.user_prompt)


def _parse_content_parts(value: Any) -> List[Dict[str, Any]]:
    if not value:
        raise InvalidPromptError("Missing required parameters")
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError as exc:
            raise InvalidPromptError(
                f"userPrompt is not valid JSON content: {exc.msg}"
            ) from exc
    if not isinstance(value, list) or not all(isinstance(p, dict) for p in value):
        raise InvalidPromptError("userPrompt must be a list of content parts")
    return value


__all__ = [
    "ChatTurn",
    "HistoryPrompt",
    "ImagePrompt",
    "InvalidPromptError",
    "PerplexityChatRequest",
    "PlainPrompt",
    "PromptVariant",
]
