"""Typed session event payloads consumed by the EventReconciler."""

from __future__ import annotations

from typing import Any, Literal, TypeAlias, TypedDict

SESSION_EVENT_USER_FINAL = "user_final"
SESSION_EVENT_ASSISTANT_FINAL = "assistant_final"
SESSION_EVENT_USER_CORRECTION = "user_correction"
SESSION_EVENT_ERROR = "error"

SessionEventType: TypeAlias = Literal[
    "user_final",
    "assistant_final",
    "user_correction",
    "error",
]


class UserFinalEvent(TypedDict):
    type: Literal["user_final"]
    text: str


class AssistantFinalEvent(TypedDict):
    type: Literal["assistant_final"]
    text: str


class UserCorrectionEvent(TypedDict):
    type: Literal["user_correction"]
    text: str


class ErrorEvent(TypedDict):
    type: Literal["error"]
    error: Any


SessionEventPayload: TypeAlias = UserFinalEvent | AssistantFinalEvent | UserCorrectionEvent | ErrorEvent


def user_final(text: str) -> UserFinalEvent:
    return {"type": SESSION_EVENT_USER_FINAL, "text": text}


def assistant_final(text: str) -> AssistantFinalEvent:
    return {"type": SESSION_EVENT_ASSISTANT_FINAL, "text": text}


def user_correction(text: str) -> UserCorrectionEvent:
    return {"type": SESSION_EVENT_USER_CORRECTION, "text": text}


def session_error(error: Any) -> ErrorEvent:
    return {"type": SESSION_EVENT_ERROR, "error": error}
