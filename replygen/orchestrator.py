# ============================================================
# Reply orchestration
# ------------------------------------------------------------
# analyze -> draft -> [validate] -> score, with:
#   - per-stage cache lookups
#   - retry with the classified delay for retryable failures
#   - escalation to the secondary tier on critical quota/auth
#   - a static fallback when escalation is impossible or fails
# ============================================================

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Type

from pydantic import BaseModel, ValidationError

from . import prompts
from .cache import ResponseCache
from .citations import reconcile
from .errors import ErrorClassifier, ErrorResponse, GenerationError, format_delay
from .fallback import fallback_reply
from .generate import StageRunner, Tier, build_model_client
from .types import DraftOutput, GenerationRequest, QualityAssessment, ReplyMode, ReplyResult

logger = logging.getLogger(__name__)

StatusSink = Callable[[str], None]

ANALYZE = "analyze"
DRAFT = "draft"
VALIDATE = "validate"
SCORE = "score"

STATUS_TEXT = {
    ANALYZE: "Analyzing post & formulating search strategy...",
    DRAFT: "Searching academic literature & drafting reply...",
    VALIDATE: "Cross-referencing claims & validating citations...",
    SCORE: "Assessing final output quality...",
}

DONE_TEXT = {
    ANALYZE: "Key concepts identified.",
    DRAFT: "Draft reply ready.",
    VALIDATE: "Citations validated.",
    SCORE: "Quality assessment complete.",
}


class PipelineState(str, Enum):
    NORMAL = "normal"
    ESCALATED = "escalated"
    FALLBACK = "fallback"
    DONE = "done"


class _Fallback(Exception):
    """Internal signal: leave the stage sequence for the static reply."""

    def __init__(self, response: ErrorResponse):
        super().__init__(response.message)
        self.response = response


@dataclass
class _Run:
    request: GenerationRequest
    on_status: Optional[StatusSink] = None
    state: PipelineState = PipelineState.NORMAL
    tier: Tier = Tier.PRIMARY
    keywords: List[str] = field(default_factory=list)
    notices: List[ErrorResponse] = field(default_factory=list)

    @property
    def call_tier(self) -> Tier:
        return Tier.SECONDARY if self.state is PipelineState.ESCALATED else Tier.PRIMARY


def _invalid_request(classifier: ErrorClassifier, exc: ValidationError) -> ErrorResponse:
    fields = {str(err["loc"][0]) for err in exc.errors() if err.get("loc")}
    if "post" not in fields and "mode" in fields:
        allowed = ", ".join(m.value for m in ReplyMode)
        return classifier.invalid_input(
            "Unknown reply mode.", suggestion=f"Choose one of: {allowed}.",
        )
    return classifier.invalid_input("Post content cannot be empty.")


class EscalationOrchestrator:
    """Owns its cache and error history; one instance serves many requests."""

    def __init__(
        self,
        runner: StageRunner,
        cache: Optional[ResponseCache] = None,
        classifier: Optional[ErrorClassifier] = None,
        persona: Optional[prompts.Persona] = None,
        max_attempts: int = 3,
        grounding: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.runner = runner
        self.cache = cache if cache is not None else ResponseCache()
        self.classifier = classifier if classifier is not None else ErrorClassifier()
        self.persona = persona or prompts.load_persona("scientific-expert")
        self.max_attempts = max_attempts
        self.grounding = grounding
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, model_client=None) -> "EscalationOrchestrator":
        runner = StageRunner(
            model_client or build_model_client(settings),
            models={Tier.PRIMARY: settings.PRIMARY_MODEL, Tier.SECONDARY: settings.SECONDARY_MODEL},
            temperature=settings.TEMPERATURE,
            max_tokens=settings.MAX_TOKENS,
        )
        return cls(
            runner,
            cache=ResponseCache(max_entries=settings.CACHE_MAX_ENTRIES),
            persona=prompts.load_persona(settings.PERSONA_KEY),
            max_attempts=settings.MAX_ATTEMPTS,
            grounding=settings.GROUNDING_ENABLED,
        )

    # -------------------------
    # Public API
    # -------------------------
    def generate(
        self,
        post: str,
        mode: ReplyMode = ReplyMode.BALANCED,
        on_status: Optional[StatusSink] = None,
    ) -> ReplyResult:
        """Run the full pipeline. Raises GenerationError only."""
        try:
            request = GenerationRequest(post=post, mode=mode)
        except ValidationError as e:
            raise GenerationError(_invalid_request(self.classifier, e)) from None

        run = _Run(request=request, on_status=on_status)
        try:
            reply, references = self._compose(run)
        except _Fallback as fb:
            run.state = PipelineState.FALLBACK
            self._emit(run, "All model tiers are unavailable, using a static reply...")
            result = fallback_reply(request.post, run.keywords)
            result.notices = [*run.notices, fb.response]
            return result

        quality = self._score(run, reply, references)
        run.state = PipelineState.DONE
        self._emit(run, "Finalizing response...")
        return ReplyResult(
            reply=reply,
            references=references,
            quality=quality,
            is_fallback=False,
            keywords=run.keywords,
            tier=run.tier.value,
            notices=run.notices,
        )

    # -------------------------
    # Stages
    # -------------------------
    def _compose(self, run: _Run):
        post, mode = run.request.post, run.request.mode

        self._emit(run, STATUS_TEXT[ANALYZE])
        text = self._run_stage(run, ANALYZE, prompts.ANALYZE_SYSTEM, prompts.analyze_prompt(post))
        run.keywords = prompts.parse_keywords(text)
        self._emit(run, DONE_TEXT[ANALYZE])

        self._emit(run, STATUS_TEXT[DRAFT])
        draft: DraftOutput = self._run_stage(
            run, DRAFT,
            prompts.draft_system(self.persona),
            prompts.draft_prompt(post, mode, run.keywords, self.persona),
            shape=DraftOutput,
            grounding=self.grounding,
        )
        self._emit(run, DONE_TEXT[DRAFT])
        if not draft.references:
            # nothing to validate against
            return reconcile(draft.reply, [])

        self._emit(run, STATUS_TEXT[VALIDATE])
        edited = self._run_stage(
            run, VALIDATE,
            prompts.validate_system(self.persona),
            prompts.validate_prompt(post, draft.reply, draft.references),
        )
        self._emit(run, DONE_TEXT[VALIDATE])
        return reconcile(edited, draft.references)

    def _score(self, run: _Run, reply: str, references) -> Optional[QualityAssessment]:
        self._emit(run, STATUS_TEXT[SCORE])
        try:
            quality = self._run_stage(
                run, SCORE, prompts.SCORE_SYSTEM,
                prompts.score_prompt(run.request.post, reply, references),
                shape=QualityAssessment,
            )
        except GenerationError as e:
            run.notices.append(e.response)
        except _Fallback as fb:
            run.notices.append(fb.response)
        else:
            self._emit(run, DONE_TEXT[SCORE])
            return quality
        logger.info("quality assessment skipped after failure")
        return None

    # -------------------------
    # Retry / escalation core
    # -------------------------
    def _run_stage(
        self,
        run: _Run,
        stage: str,
        system: str,
        prompt: str,
        shape: Optional[Type[BaseModel]] = None,
        grounding: bool = False,
    ):
        cached = self.cache.get(stage, prompt)
        if cached is not None:
            logger.info("%s: cache hit", stage)
            return cached

        attempt = 0
        while True:
            tier = run.call_tier
            attempt += 1
            try:
                value = self.runner.run(tier, system, prompt, shape=shape, grounding=grounding, stage=stage)
            except Exception as e:  # provider failures are opaque; classify them all
                err = self.classifier.classify(e, operation=stage)
            else:
                self.cache.put(stage, prompt, value)
                if tier is not run.tier:
                    self._emit(run, f"Secondary model responded, continuing {stage} on the secondary tier.")
                elif attempt > 1:
                    self._emit(run, f"Recovered on attempt {attempt}/{self.max_attempts}.")
                run.tier = tier
                logger.info("%s: done via %s tier (attempt %d)", stage, tier.value, attempt)
                return value

            if err.can_retry and attempt < self.max_attempts:
                delay = err.retry_delay_ms or 0
                self._emit(run, f"{err.user_message} Retrying in {format_delay(delay)} "
                                f"(attempt {attempt + 1}/{self.max_attempts})...")
                self._sleep(delay / 1000)
                continue
            if err.can_retry:
                if run.state is PipelineState.ESCALATED:
                    raise _Fallback(err)
                raise GenerationError(err)

            if err.reason == "search_quota" and grounding:
                run.notices.append(err)
                grounding = False
                attempt = 0
                self._emit(run, "Search quota reached, drafting from internal knowledge...")
                continue

            if err.escalates and run.state is PipelineState.NORMAL and self.runner.has_tier(Tier.SECONDARY):
                run.state = PipelineState.ESCALATED
                attempt = 0
                self._emit(run, f"Primary model unavailable, escalating {stage} to the secondary model...")
                continue

            raise _Fallback(err)

    def _emit(self, run: _Run, text: str) -> None:
        logger.info("status: %s", text)
        if run.on_status is None:
            return
        try:
            run.on_status(text)
        except Exception:
            logger.exception("status sink raised; ignoring")
