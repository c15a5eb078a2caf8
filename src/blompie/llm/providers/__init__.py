from .ollama import OllamaBackend
from .openai_compatible import OpenAICompatibleBackend

__all__ = ["OllamaBackend", "OpenAICompatibleBackend"]
