"""
SDK for the prompt relay.

Provides the outbound client for the completion API.
"""

from .openai_client import CompletionClient, CompletionResult

__all__ = ["CompletionClient", "CompletionResult"]
