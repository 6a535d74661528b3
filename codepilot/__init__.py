"""
Local LLM request orchestration for editor clients.
"""

__version__ = "0.3.0"
