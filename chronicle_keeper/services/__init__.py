from .factory import SynthesisBackend, build_synthesis_client
from .ollama_chat_client import OllamaChatClient
from .openrouter_client import OpenRouterClient

__all__ = ["OllamaChatClient", "OpenRouterClient", "SynthesisBackend", "build_synthesis_client"]
