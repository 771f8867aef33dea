from __future__ import annotations

from typing import Tuple


class LLMError(Exception):
    """Base error for LLM-related failures."""


class LLMNotConfiguredError(LLMError):
    pass


class LLMEmptyResponseError(LLMError):
    pass


def parse_error_message(error: Exception) -> str:
    """
    Map raw exceptions into short, human-readable messages.
    Used for admin notifications and logs.
    """
    s, t = str(error), type(error).__name__
    if "429" in s or t == "RateLimitError":
        return "⚠️ Rate Limited: API provider is temporarily rate-limited. Please retry shortly."
    if "401" in s or "Unauthorized" in s:
        return "❌ Authentication Error: Invalid API key or credentials."
    if "404" in s or t in ("NotFound", "NotFoundError"):
        return "❌ Not Found: The requested resource was not found."
    if "403" in s or t == "Forbidden":
        return "❌ Forbidden: You don't have permission to access this resource."
    if "Connection" in t or "ECONNREFUSED" in s or "ETIMEDOUT" in s:
        return "❌ Connection Error: Unable to connect to the API provider."
    if t in ("TimeoutError", "CancelledError"):
        return "❌ Timeout: The model did not answer in time."
    return f"❌ {t}: {s.split(chr(10))[0][:100]}"


def format_user_friendly_error(error: Exception) -> str:
    """
    Short, safe error message suitable for end users.
    """
    s, t = str(error), type(error).__name__
    if isinstance(error, LLMNotConfiguredError):
        return "Question answering is not configured on this server."
    if "429" in s or t == "RateLimitError":
        return "The model is busy right now, please try again in a moment."
    if "401" in s or "Unauthorized" in s:
        return "I can't reach the model service at the moment. An admin has been notified."
    if "404" in s or t in ("NotFound", "NotFoundError"):
        return "The configured model could not be found."
    if "Connection" in t or "ECONNREFUSED" in s or "ETIMEDOUT" in s:
        return "Connecting to the model service failed, possibly a network problem."
    if t == "TimeoutError":
        return "The model took too long to answer. Please try again later."
    return "I'm sorry, I couldn't process your request at the moment. Please try again later."


def error_messages(error: Exception) -> Tuple[str, str]:
    """
    Convenience helper returning (admin_message, user_message).
    """
    return parse_error_message(error), format_user_friendly_error(error)
