# Model clients. Each exposes generate(messages, params) -> (text, meta).

from .echo_dev_client import EchoDevClient


def build_model_client(settings):
    """Pick a backend: Ollama when requested, OpenAI when a key is set, echo otherwise."""
    if settings.USE_OLLAMA:
        from .ollama_client import OllamaClient
        return OllamaClient(model=settings.PRIMARY_MODEL, host=settings.OLLAMA_HOST)
    if settings.OPENAI_API_KEY:
        from .openai_client import OpenAIClient
        return OpenAIClient(model=settings.PRIMARY_MODEL, api_key=settings.OPENAI_API_KEY)
    return EchoDevClient()


__all__ = ["EchoDevClient", "build_model_client"]
