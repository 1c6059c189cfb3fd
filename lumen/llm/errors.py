from __future__ import annotations

from typing import Tuple


class LumenError(Exception):
    """Base error for failures the command layer knows how to report."""


class ConfigurationMissing(LumenError):
    """A credential or endpoint needed by a feature is not configured."""


class ProviderError(LumenError):
    """Embedding or chat API call failed."""


class BillingInactiveError(ProviderError):
    pass


class ProviderAuthError(ProviderError):
    pass


class ProviderRateLimitError(ProviderError):
    pass


class ProviderConnectionError(ProviderError):
    pass


class StoreError(LumenError):
    """Vector store unreachable or rejected an operation."""


class DimensionMismatchError(StoreError):
    pass


class OperationTimeout(LumenError, TimeoutError):
    """An external call did not settle within its allotted duration."""

    def __init__(self, label: str, seconds: float):
        super().__init__(f"{label} timed out after {seconds:g}s")
        self.label = label
        self.seconds = seconds


class RateLimitExceeded(LumenError):
    """Local daily cap reached. `reason` is 'global' or 'user'."""

    def __init__(self, reason: str, per_day: int | None = None):
        super().__init__(f"rate limit reached ({reason})")
        self.reason = reason
        self.per_day = per_day


def parse_error_message(error: Exception) -> str:
    """
    Map raw exceptions into short, human-readable messages.
    Used for admin notifications and logs.
    """
    s, t = str(error), type(error).__name__
    if isinstance(error, BillingInactiveError):
        return "💳 Billing Inactive: the provider account has no active billing or quota."
    if isinstance(error, OperationTimeout):
        return f"⏱️ Timeout: {s}"
    if isinstance(error, ConfigurationMissing):
        return f"⚙️ Not Configured: {s}"
    if isinstance(error, StoreError):
        return f"📚 Vector Store Error: {s.split(chr(10))[0][:100]}"
    if "429" in s or isinstance(error, ProviderRateLimitError) or t == "RateLimitError":
        return "⚠️ Rate Limited: API provider is temporarily rate-limited. Please retry shortly."
    if "401" in s or "Unauthorized" in s or isinstance(error, ProviderAuthError):
        return "❌ Authentication Error: Invalid API key or credentials."
    if "404" in s or t == "NotFound":
        return "❌ Not Found: The requested resource was not found."
    if "403" in s or t == "Forbidden":
        return "❌ Forbidden: You don't have permission to access this resource."
    if "Connection" in t or "ECONNREFUSED" in s or "ETIMEDOUT" in s:
        return "❌ Connection Error: Unable to connect to the API provider."
    return f"❌ {t}: {s.split(chr(10))[0][:100]}"


def format_user_friendly_error(error: Exception) -> str:
    """
    Short, safe error message suitable for end users.
    """
    if isinstance(error, BillingInactiveError):
        return "⛔ The AI service is paused (billing inactive). An admin has to reactivate it."
    if isinstance(error, OperationTimeout):
        return "⏱️ That took too long. Please try again in a moment."
    if isinstance(error, RateLimitExceeded):
        if error.reason == "global":
            cap = f" ({error.per_day}/day)" if error.per_day is not None else ""
            return f"⛔ Global limit reached{cap}. Try later."
        return "⛔ Daily limit reached. Use `/limits` to check."
    if isinstance(error, ConfigurationMissing):
        return f"⛔ {error}"
    if isinstance(error, StoreError):
        return "⛔ The knowledge base is unavailable right now. Please try again later."
    s, t = str(error), type(error).__name__
    if "429" in s or isinstance(error, ProviderRateLimitError) or t == "RateLimitError":
        return "⚠️ The AI service is busy right now. Please try again shortly."
    if "401" in s or "Unauthorized" in s or isinstance(error, ProviderAuthError):
        return "⛔ Cannot reach the AI service. Please ask an admin to check the API key."
    if "Connection" in t or isinstance(error, ProviderConnectionError):
        return "⛔ Connection to the AI service failed. Please try again later."
    return "⛔ Something went wrong. Please try again or ping an admin."


def error_messages(error: Exception) -> Tuple[str, str]:
    """
    Convenience helper returning (admin_message, user_message).
    """
    return parse_error_message(error), format_user_friendly_error(error)
