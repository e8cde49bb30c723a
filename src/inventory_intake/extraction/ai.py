from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from openai import APIConnectionError, APIError, APIStatusError, APITimeoutError, OpenAI

from ..config import ExtractionConfig
from ..domain.models import ProductRecord
from ..logging import get_logger
from ..usage import UsageMeter
from .base import Extractor
from .constants import CATEGORY_CHOICES, CONDITION_CHOICES, RESPONSE_PREVIEW_CHARS, STRATEGY_AI
from .errors import AIError, AIErrorKind
from .recovery import recover_json_array


LOG = get_logger("ai-extractor")

USAGE_ENDPOINT = "/extract"

SYSTEM_PROMPT = (
    "You extract inventory records for a musical instrument shop. "
    "Copy values exactly as they appear in the source text and answer with JSON only."
)

RECORD_SHAPE = (
    '[{"category":"","product_name":"","manufacturer":"","model_number":"","color":"",'
    '"condition":"","price":"","list_price":"","wholesale_price":"","supplier":"","notes":""}]'
)


def build_prompt(text: str) -> str:
    """Return the user prompt for `text`; identical input gives an identical prompt."""
    categories = ", ".join(CATEGORY_CHOICES)
    conditions = ", ".join(CONDITION_CHOICES)
    return (
        "Extract every musical instrument product in the text below as a JSON array.\n\n"
        "Rules:\n"
        "- Only use information written explicitly in the text.\n"
        "- Never guess, infer or complete missing information.\n"
        '- Use an empty string "" for any field that is not in the text.\n'
        "- Never add products that are not in the text.\n"
        f"- category must be one of: {categories} (use {CATEGORY_CHOICES[-1]} when unclear).\n"
        f'- condition must be one of: {conditions}, or "" when not stated.\n'
        "- Prices are digits only, without currency symbols or separators.\n\n"
        f"JSON format:\n{RECORD_SHAPE}\n\n"
        f"Source text:\n{text}"
    )


@dataclass(frozen=True)
class AIExtractorConfig:
    api_key: Optional[str]
    model_name: str = "gpt-4o-mini"
    base_url: Optional[str] = None
    temperature: float = 0.1
    max_tokens: int = 4000
    timeout_seconds: Optional[float] = None

    @classmethod
    def from_extraction_config(cls, config: ExtractionConfig) -> "AIExtractorConfig":
        return cls(
            api_key=config.openai_api_key,
            model_name=config.openai_model,
            base_url=config.openai_base_url,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout_seconds=config.request_timeout,
        )


class AIExtractor(Extractor):
    """Text-completion based extractor.

    Exactly one chat completion per `extract` call, no retries. Failures are
    raised as AIError with a kind; the caller decides whether to re-run with
    the pattern strategy.
    """

    name = STRATEGY_AI

    def __init__(
        self,
        config: AIExtractorConfig,
        *,
        client: Any = None,
        meter: Optional[UsageMeter] = None,
    ) -> None:
        self.config = config
        self.meter = meter
        self._client = client

    @property
    def method(self) -> str:
        return f"ai ({self.config.model_name})"

    def _get_client(self) -> Any:
        if self._client is None:
            http_client = None
            if self.config.timeout_seconds:
                http_client = httpx.Client(timeout=httpx.Timeout(self.config.timeout_seconds, connect=10.0))
            self._client = OpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                http_client=http_client,
                max_retries=0,
            )
        return self._client

    def _record_usage(self, completion: Any, action: str) -> None:
        if self.meter is None:
            return
        usage = getattr(completion, "usage", None)
        prompt_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
        completion_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
        self.meter.record(
            self.config.model_name,
            prompt_tokens,
            completion_tokens,
            USAGE_ENDPOINT,
            action,
        )

    def complete(self, text: str, *, action: str = "product_extraction") -> str:
        """Send the prompt and return the raw response content."""
        if not self.config.api_key:
            raise AIError(
                AIErrorKind.MISSING_CREDENTIAL,
                "OpenAI API key is not configured; set OPENAI_API_KEY or use the pattern strategy",
            )
        messages: List[Dict[str, str]] = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(text)},
        ]
        LOG.info("Calling chat completions model='%s' (%d chars of source text)", self.config.model_name, len(text))
        t0 = time.perf_counter()
        try:
            completion = self._get_client().chat.completions.create(
                model=self.config.model_name,
                messages=messages,
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            )
        except (APIConnectionError, APITimeoutError) as exc:
            LOG.error("Network/timeout while calling OpenAI: %s", exc)
            raise AIError(AIErrorKind.SERVICE_ERROR, f"AI service unreachable: {exc}") from exc
        except APIStatusError as exc:
            body = getattr(getattr(exc, "response", None), "text", None)
            LOG.error("OpenAI API returned %s. Body preview: %r", exc.status_code, (body[:300] if body else None))
            raise AIError(
                AIErrorKind.SERVICE_ERROR,
                f"AI service returned HTTP {exc.status_code}",
                debug={"status_code": exc.status_code},
            ) from exc
        except APIError as exc:
            LOG.error("OpenAI request failed: %s", exc)
            raise AIError(AIErrorKind.SERVICE_ERROR, f"AI service error: {exc}") from exc

        self._record_usage(completion, action)

        choices = getattr(completion, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None) if message is not None else None
        LOG.info(
            "Chat completion finished in %.2fs id=%s (%s chars)",
            time.perf_counter() - t0,
            getattr(completion, "id", None),
            len(content) if content else 0,
        )
        if not content or not content.strip():
            raise AIError(AIErrorKind.SERVICE_ERROR, "AI service returned an empty response")
        return content

    def extract(self, text: str, *, action: str = "product_extraction") -> List[ProductRecord]:
        content = self.complete(text, action=action)
        LOG.debug("Raw AI response first 500 chars: %r", content[:500])

        raw_items = recover_json_array(content)
        records = [ProductRecord.from_mapping(item) for item in raw_items if isinstance(item, dict)]
        valid = [r for r in records if r.has_identifier()]
        LOG.info("AI response parsed: %d item(s), %d with name or model number", len(raw_items), len(valid))
        if not valid:
            raise AIError(
                AIErrorKind.NO_VALID_RECORDS,
                "No valid product records in the AI response",
                debug={
                    "extracted_count": len(raw_items),
                    "raw_products": raw_items[:20],
                    "ai_response": content[:RESPONSE_PREVIEW_CHARS],
                },
            )
        return valid
