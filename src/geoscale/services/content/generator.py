"""OpenRouter-backed content generator (effect executor for content-generation jobs)."""

import random

import structlog

from geoscale.core.config import Settings
from geoscale.services.content.local_support import (
    build_optimise_prompt,
    calculate_local_support_score,
    optimisation_instructions,
)
from geoscale.services.content.openrouter_client import OpenRouterClient
from geoscale.services.content.prompts import build_prompt, parse_generated_json, slugify
from geoscale.services.effects import GeneratedContent, PageContext
from geoscale.services.exceptions import ServiceError

logger = structlog.get_logger(__name__)

OPTIMISE_TEMPERATURE = 0.3
OPTIMISE_MAX_TOKENS = 4000


class OpenRouterContentGenerator:
    """Generates landing page content with one chat-completions call.

    Suburb pages get a second call when their Local Support Score has failed
    checks. That pass is best-effort: if it fails, the first draft is kept.
    """

    api_type = "openrouter"

    def __init__(
        self,
        client: OpenRouterClient,
        optimise_suburbs: bool = True,
        rng: random.Random | None = None,
    ):
        self.client = client
        self.optimise_suburbs = optimise_suburbs
        self.rng = rng

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenRouterContentGenerator":
        return cls(
            OpenRouterClient(
                api_key=settings.openrouter_api_key,
                model=settings.openrouter_model,
                base_url=settings.openrouter_base_url,
                referer=settings.site_url,
                timeout=settings.job_timeout_seconds,
            ),
            optimise_suburbs=settings.optimise_suburb_pages,
        )

    @property
    def endpoint(self) -> str:
        return self.client.endpoint

    async def generate(self, context: PageContext) -> GeneratedContent:
        """Generate title, body and meta fields for a subject.

        Raises:
            ExternalServiceError: Transient OpenRouter failure (retryable)
            PermanentServiceError: Auth/config failure or unusable reply
        """
        suburb_page = context.subject.parent_location_id is not None
        prompt = build_prompt(context, self.rng)
        logger.debug(
            "content.generation.requested",
            subject_id=str(context.subject.id),
            phrase=context.subject.phrase,
            suburb_page=suburb_page,
            prompt_length=len(prompt),
        )

        reply = await self.client.complete(prompt)
        parsed = parse_generated_json(reply)

        title = parsed["title"]
        body = parsed["content"]
        audit = {"model": self.client.model, "prompt_length": len(prompt)}
        if suburb_page and self.optimise_suburbs:
            body, score, optimised = await self._optimise_suburb(context, body)
            audit.update(local_support_score=score, optimised=optimised)

        return GeneratedContent(
            title=title,
            body=body,
            meta_title=parsed.get("meta_title") or title,
            meta_description=parsed.get("meta_description") or "",
            slug=slugify(context.subject.phrase),
            audit=audit,
        )

    async def _optimise_suburb(self, context: PageContext, body: str) -> tuple[str, int, bool]:
        """Score a suburb draft and rewrite it for the failed checks.

        Returns:
            (body, score of the first draft, whether the body was rewritten)
        """
        phrase = context.subject.phrase
        location = context.subject.location_name
        result = calculate_local_support_score(body, phrase, location)
        instructions = optimisation_instructions(result.failed_checks, phrase, location)

        logger.info(
            "content.local_support.scored",
            subject_id=str(context.subject.id),
            score=result.score,
            failed_checks=[check.name for check in result.failed_checks],
        )
        if not instructions:
            return body, result.score, False

        try:
            optimised = await self.client.complete(
                build_optimise_prompt(body, instructions),
                temperature=OPTIMISE_TEMPERATURE,
                max_tokens=OPTIMISE_MAX_TOKENS,
            )
        except ServiceError as e:
            logger.warning(
                "content.local_support.optimise_failed",
                subject_id=str(context.subject.id),
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return body, result.score, False

        optimised = optimised.strip()
        if not optimised:
            return body, result.score, False

        logger.info(
            "content.local_support.optimised",
            subject_id=str(context.subject.id),
            fixes_applied=len(instructions),
        )
        return optimised, result.score, True
