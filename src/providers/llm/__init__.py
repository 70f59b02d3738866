"""LLM provider adapters.

One concrete implementation of ILLMProvider (src/interfaces/llm_provider.py):
    - LlamaServerLLMProvider -- streaming chat completions from the supervised llama-server
"""

from src.providers.llm.llama_server_provider import LlamaServerLLMProvider

__all__ = ["LlamaServerLLMProvider"]
