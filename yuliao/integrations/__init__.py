"""
External integrations for the phrase drill.

Modules:
- generation_client: chat-completions client producing practice content
- retry: shared retry-with-backoff policy
"""
from .generation_client import ContentGenerator, GenerationClient
from .retry import RetryPolicy, is_retryable

__all__ = ["ContentGenerator", "GenerationClient", "RetryPolicy", "is_retryable"]
