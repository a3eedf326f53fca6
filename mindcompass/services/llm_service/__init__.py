"""LLM Service for MindCompass.

Provider-neutral text generation used by the triage classifier. The
classifier owns the response contract; providers only move text.
"""
from .base_llm import BaseLLM, LLMConfig, LLMProvider, LLMResponse, create_llm

__all__ = ["BaseLLM", "LLMConfig", "LLMProvider", "LLMResponse", "create_llm"]
