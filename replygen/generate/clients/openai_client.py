# Client for the OpenAI Chat Completions API.
# Same interface as OllamaClient; provider errors propagate unchanged so the
# classifier can read their status codes and bodies.

import os
from typing import List, Tuple, Dict, Any, Optional
from openai import OpenAI
from ..types import Message, ModelParams

class OpenAIClient:
    def __init__(self, model: str = "gpt-4o-mini", api_key: Optional[str] = None):
        self.model = model
        self.client = OpenAI(api_key=api_key or os.getenv("OPENAI_API_KEY"))

    def generate(self, messages: List[Message], params: ModelParams) -> Tuple[str, Dict[str, Any]]:
        model = params.model or self.model
        formatted = [{"role": m.role, "content": m.content} for m in messages]
        kwargs: Dict[str, Any] = {}
        if params.json_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": params.json_schema.get("title", "result"),
                    "schema": params.json_schema,
                    "strict": False,
                },
            }
        if params.grounding:
            kwargs["web_search_options"] = {}
        resp = self.client.chat.completions.create(
            model=model,
            messages=formatted,
            temperature=params.temperature or 0.3,
            max_tokens=params.max_tokens or 1000,
            **kwargs,
        )
        text = (resp.choices[0].message.content or "").strip()
        meta = {"engine": "openai", "model": model, "finish_reason": resp.choices[0].finish_reason}
        return text, meta
