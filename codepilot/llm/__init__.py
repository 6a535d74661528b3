"""
Streaming access to the local inference backend.
"""

from .ollama_stream import (
    OllamaStreamRelay,
    NDJSONLineBuffer,
    StreamOutcome,
    TokenEvent,
    DoneEvent,
    AbortedEvent,
    ErrorEvent,
    check_ollama_health,
)

__all__ = [
    'OllamaStreamRelay',
    'NDJSONLineBuffer',
    'StreamOutcome',
    'TokenEvent',
    'DoneEvent',
    'AbortedEvent',
    'ErrorEvent',
    'check_ollama_health'
]
