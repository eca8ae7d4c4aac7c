#!/usr/bin/env python3
"""
Exceptions raised by the conversation analysis pipeline.
Provider failures are recovered inside the gateway; only EmptyConversation
and AnalysisUnavailable are meant to reach the caller.
"""


class AnalysisError(Exception):
    """Base exception for all analysis-related errors."""

    def __init__(self, message: str = "Analysis failed", *args, **kwargs):
        super().__init__(message, *args, **kwargs)


class EmptyConversation(AnalysisError):
    """Raised when a conversation has no messages to analyze."""

    def __init__(self, message: str = "Conversation has no messages", *args, **kwargs):
        super().__init__(message, *args, **kwargs)


class ProviderError(AnalysisError):
    """A single provider call failed (network, timeout, non-2xx, bad payload)."""

    def __init__(self, message: str = "Provider call failed", provider: str = None, *args, **kwargs):
        self.provider = provider
        super().__init__(message, *args, **kwargs)


class MalformedProviderResponse(ProviderError):
    """The remote provider answered with JSON that does not fit the schema."""

    def __init__(self, message: str = "Malformed provider response", provider: str = None, raw: str = None, *args, **kwargs):
        self.raw = raw
        super().__init__(message, provider, *args, **kwargs)


class ProviderUnavailable(AnalysisError):
    """Both the remote and the local provider failed for one attempt."""

    def __init__(self, message: str = "No analysis provider available", *args, **kwargs):
        super().__init__(message, *args, **kwargs)


class AnalysisUnavailable(ProviderUnavailable):
    """Raised by the orchestrator when providers failed and nothing is cached."""

    def __init__(self, message: str = "Analysis unavailable and no cached record exists", *args, **kwargs):
        super().__init__(message, *args, **kwargs)


class PersistenceFailure(AnalysisError):
    """The analysis cache could not be written."""

    def __init__(self, message: str = "Failed to persist analysis", *args, **kwargs):
        super().__init__(message, *args, **kwargs)
