# Issues one stage call against a model tier and checks the output shape.

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional, Type, Union

from pydantic import BaseModel, ValidationError

from ..errors import ContentEmptyError, MalformedOutputError
from .types import Message, ModelParams, Tier

logger = logging.getLogger(__name__)

_FENCED = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def extract_json(text: str) -> Any:
    """Tolerant JSON extractor for model output (fences, leading prose)."""
    text = (text or "").strip()
    m = _FENCED.search(text)
    if m:
        text = m.group(1).strip()
    try:
        return json.loads(text)
    except ValueError:
        pass
    for pattern in (r"\{.*\}", r"\[.*\]"):
        m = re.search(pattern, text, re.DOTALL)
        if m:
            try:
                return json.loads(m.group(0))
            except ValueError:
                continue
    raise MalformedOutputError("Model output is not valid JSON (malformed response).")


class StageRunner:
    def __init__(self, model_client, models: Dict[Tier, Optional[str]],
                 temperature: float = 0.3, max_tokens: int = 1000):
        self.model_client = model_client
        self.models = models
        self.temperature = temperature
        self.max_tokens = max_tokens

    def has_tier(self, tier: Tier) -> bool:
        return bool(self.models.get(tier))

    def run(
        self,
        tier: Tier,
        system_instruction: str,
        prompt: str,
        shape: Optional[Type[BaseModel]] = None,
        grounding: bool = False,
        stage: str = "stage",
    ) -> Union[str, BaseModel]:
        """Call the model once; return text, or a validated `shape` instance."""
        params = ModelParams(
            model=self.models.get(tier),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            json_schema=shape.model_json_schema() if shape is not None else None,
            grounding=grounding,
        )
        messages = [Message(role="system", content=system_instruction), Message(role="user", content=prompt)]
        text, meta = self.model_client.generate(messages, params)
        logger.debug("%s via %s: %d chars (%s)", stage, tier.value, len(text or ""), meta)

        if not text or not text.strip():
            raise ContentEmptyError(f"The model returned an empty response during the {stage} stage.")
        if shape is None:
            return text.strip()
        data = extract_json(text)
        try:
            return shape.model_validate(data)
        except ValidationError as e:
            raise MalformedOutputError(
                f"Model output does not match {shape.__name__} (malformed response): {e.error_count()} errors"
            ) from e
