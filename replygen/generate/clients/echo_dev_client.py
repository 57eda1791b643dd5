# Dummy model client for local dev and testing without API calls.
# Free text echoes the user prompt; structured requests get a stub shaped
# like the requested JSON schema.

import json
from typing import List, Tuple, Dict, Any, Optional
from ..types import Message, ModelParams

class EchoDevClient:
    def __init__(self):
        self.model = "echo-dev"

    def generate(self, messages: List[Message], params: ModelParams) -> Tuple[str, Dict[str, Any]]:
        user_inputs = [m.content for m in messages if m.role == "user"]
        echoed = user_inputs[-1] if user_inputs else "(no user input)"
        if params.json_schema is not None:
            text = json.dumps(_stub(params.json_schema, params.json_schema, echoed))
        else:
            text = f"[ECHO RESPONSE]\n{echoed}"
        meta = {"engine": "echo", "model": params.model or self.model,
                "temp": params.temperature, "max_tokens": params.max_tokens}
        return text, meta


def _stub(node: Dict[str, Any], root: Dict[str, Any], echoed: str) -> Any:
    ref: Optional[str] = node.get("$ref")
    if ref:
        name = ref.rsplit("/", 1)[-1]
        return _stub(root.get("$defs", {}).get(name, {}), root, echoed)
    if "anyOf" in node:
        options = [o for o in node["anyOf"] if o.get("type") != "null"]
        return _stub(options[0], root, echoed) if options else None
    kind = node.get("type")
    if kind == "object":
        props = node.get("properties", {})
        return {key: _stub(sub, root, echoed) for key, sub in props.items()}
    if kind == "array":
        return []
    if kind in ("number", "integer"):
        value = 50
        if "maximum" in node:
            value = min(value, node["maximum"])
        if "minimum" in node:
            value = max(value, node["minimum"])
        return value
    if kind == "boolean":
        return False
    return f"[ECHO RESPONSE] {echoed[:200]}"
