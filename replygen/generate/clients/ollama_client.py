# Client for Ollama local inference.
# Accepts a model name and exposes generate(messages, params).

import requests
import os
from typing import List, Tuple, Dict, Any
from ..types import Message, ModelParams

OLLAMA_HOST = os.getenv("OLLAMA_HOST", "http://localhost:11434")

class OllamaClient:
    def __init__(self, model: str = "mistral:7b-instruct", host: str = OLLAMA_HOST, timeout: int = 180):
        self.model = model
        self.host = host
        self.timeout = timeout

    def generate(self, messages: List[Message], params: ModelParams) -> Tuple[str, Dict[str, Any]]:
        model = params.model or self.model
        system = "\n\n".join(m.content.strip() for m in messages if m.role == "system")
        prompt = self._compose_prompt([m for m in messages if m.role != "system"])
        payload: Dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": float(params.temperature or 0.3),
                "num_predict": int(params.max_tokens or 1000),
            },
        }
        if system:
            payload["system"] = system
        if params.json_schema is not None:
            # Ollama accepts a JSON schema as the format constraint
            payload["format"] = params.json_schema
        url = f"{self.host}/api/generate"
        resp = requests.post(url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        if data.get("error"):
            raise RuntimeError(data["error"])
        return data.get("response", "").strip(), {"engine": "ollama", "model": model}

    def _compose_prompt(self, messages: List[Message]) -> str:
        parts = []
        for m in messages:
            parts.append(f"{m.role.upper()}:\n{m.content.strip()}\n")
        return "\n".join(parts)
