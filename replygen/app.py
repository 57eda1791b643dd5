# ============================================================
# Reply Generator FastAPI App
# ------------------------------------------------------------
# This app wires everything together:
#   - Model client selection (Ollama, OpenAI, or Echo)
#   - One shared orchestrator (cache + error history)
#   - JSON endpoints a browser UI renders from
# ============================================================

import logging
from typing import Any, Dict, List

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

# --- Local imports ---
from replygen.settings import settings
from replygen.errors import ErrorKind, GenerationError
from replygen.generate import build_model_client
from replygen.orchestrator import EscalationOrchestrator
from replygen.types import ReplyMode, ReplyResult

# ------------------------------------------------------------
# 🪵 Logging
# ------------------------------------------------------------
logger = logging.getLogger("replygen")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
    logger.addHandler(h)
logger.setLevel(settings.LOG_LEVEL.upper())

# ------------------------------------------------------------
# 🔧 Model client selection
# ------------------------------------------------------------
model_client = build_model_client(settings)
orchestrator = EscalationOrchestrator.from_settings(settings, model_client=model_client)

# ------------------------------------------------------------
# 🚀 FastAPI init
# ------------------------------------------------------------
app = FastAPI(title="Reply Generator API", version="0.1")

# ------------------------------------------------------------
# 📦 Pydantic models
# ------------------------------------------------------------
class GenerateRequest(BaseModel):
    post: str
    mode: ReplyMode = ReplyMode.BALANCED

class GeneratePayload(BaseModel):
    result: ReplyResult
    status: List[str]
    meta: Dict[str, Any]

# ------------------------------------------------------------
# 💬 Main generation route
# ------------------------------------------------------------
@app.post("/generate", response_model=GeneratePayload)
def generate(req: GenerateRequest):
    status: List[str] = []
    try:
        result = orchestrator.generate(req.post, mode=req.mode, on_status=status.append)
    except GenerationError as e:
        err = e.response
        if err.reason == "invalid_input":
            code = 422
        elif err.can_retry:
            code = 503
        else:
            code = 502
        return JSONResponse(status_code=code, content={"error": err.model_dump(mode="json"), "status": status})
    return GeneratePayload(
        result=result,
        status=status,
        meta={
            "engine": type(model_client).__name__,
            "primary_model": settings.PRIMARY_MODEL,
            "secondary_model": settings.SECONDARY_MODEL,
        },
    )

# ------------------------------------------------------------
# 🧾 Error history / cache
# ------------------------------------------------------------
@app.get("/errors/stats")
def error_stats():
    stats = orchestrator.classifier.statistics()
    return {"counts": {k.value: stats.get(k.value, 0) for k in ErrorKind}}

@app.delete("/cache")
def clear_cache():
    before = orchestrator.cache.stats()
    orchestrator.cache.clear()
    return {"cleared": before["entries"]}

# ------------------------------------------------------------
# 🧭 Health checks
# ------------------------------------------------------------
@app.get("/healthz")
def healthz():
    return {
        "ok": True,
        "env": settings.ENV,
        "debug": settings.DEBUG,
        "app": settings.app_name,
        "cache": orchestrator.cache.stats(),
    }

@app.get("/health")
def health():
    return {"status": "ok", "env": settings.ENV}

@app.get("/")
def hello():
    return {"message": "Reply Generator service running."}
