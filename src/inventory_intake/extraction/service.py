"""Request orchestration: acquire text, run one strategy, validate.

Every request walks a small state machine (`ExtractionRun`). Typed
ExtractionErrors stop at this boundary and come back as failure results;
a strategy that fails is never swapped for another one here.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..config import ExtractionConfig
from ..domain.models import ExtractionResult, ProductRecord
from ..logging import get_logger
from ..usage import UsageMeter
from .acquisition import TextAcquirer
from .ai import AIExtractor, AIExtractorConfig
from .base import Extractor
from .constants import KIND_IMAGE, STRATEGY_AI, STRATEGY_CHOICES, STRATEGY_PATTERN
from .dictionaries import load_dictionaries
from .errors import AcquisitionError, AcquisitionErrorKind, AIError, ExtractionError
from .pattern import PatternExtractor
from .validation import RecordValidator, dedupe_records


LOG = get_logger("orchestrator")

class RunState(str, Enum):
    START = "start"
    ACQUIRE_TEXT = "acquire_text"
    AI_ATTEMPT = "ai_attempt"
    PATTERN_ATTEMPT = "pattern_attempt"
    VALIDATE = "validate"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: Dict[RunState, Tuple[RunState, ...]] = {
    RunState.START: (RunState.ACQUIRE_TEXT, RunState.FAILED),
    RunState.ACQUIRE_TEXT: (RunState.AI_ATTEMPT, RunState.PATTERN_ATTEMPT, RunState.FAILED),
    RunState.AI_ATTEMPT: (RunState.VALIDATE, RunState.FAILED),
    RunState.PATTERN_ATTEMPT: (RunState.VALIDATE, RunState.FAILED),
    RunState.VALIDATE: (RunState.DONE, RunState.FAILED),
    RunState.DONE: (),
    RunState.FAILED: (),
}


@dataclass
class ExtractionRun:
    """Lifecycle of one extraction request."""

    strategy: str
    label: str = ""
    state: RunState = RunState.START
    history: List[RunState] = field(default_factory=lambda: [RunState.START])
    error: Optional[ExtractionError] = None

    def advance(self, state: RunState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        LOG.debug("[%s] %s -> %s", self.label or self.strategy, self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def fail(self, error: ExtractionError) -> None:
        self.error = error
        self.advance(RunState.FAILED)
        LOG.warning("[%s] extraction failed: %s (%s)", self.label or self.strategy, error.code, error.message)

    @property
    def finished(self) -> bool:
        return self.state in (RunState.DONE, RunState.FAILED)


@dataclass
class SourceFile:
    data: bytes
    kind: str = KIND_IMAGE
    file_name: Optional[str] = None


def _check_strategy(strategy: str) -> str:
    if strategy not in STRATEGY_CHOICES:
        raise ValueError(f"Unknown strategy: {strategy!r} (expected one of {', '.join(STRATEGY_CHOICES)})")
    return strategy


class ExtractionService:
    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        *,
        acquirer: Optional[TextAcquirer] = None,
        ai_extractor: Optional[AIExtractor] = None,
        pattern_extractor: Optional[PatternExtractor] = None,
        validator: Optional[RecordValidator] = None,
        meter: Optional[UsageMeter] = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self.meter = meter
        dictionaries = None
        if pattern_extractor is None or validator is None:
            dictionaries = load_dictionaries(self.config.dictionaries_path)
        self.acquirer = acquirer or TextAcquirer(self.config)
        self.ai_extractor = ai_extractor or AIExtractor(
            AIExtractorConfig.from_extraction_config(self.config),
            meter=meter,
        )
        self.pattern_extractor = pattern_extractor or PatternExtractor(dictionaries)
        self.validator = validator or RecordValidator(dictionaries)

    def _extractor_for(self, strategy: str) -> Tuple[Extractor, RunState]:
        if strategy == STRATEGY_AI:
            return self.ai_extractor, RunState.AI_ATTEMPT
        return self.pattern_extractor, RunState.PATTERN_ATTEMPT

    def _finish(
        self,
        run: ExtractionRun,
        text: str,
        diagnostics: Dict[str, Any],
        action: str,
    ) -> ExtractionResult:
        """Run the strategy and validation for text that is already acquired."""
        extractor, attempt_state = self._extractor_for(run.strategy)
        run.advance(attempt_state)
        t0 = time.perf_counter()
        candidates = extractor.extract(text, action=action)
        LOG.info(
            "[%s] %s produced %d candidate(s) in %.2fs",
            run.label or run.strategy,
            extractor.method,
            len(candidates),
            time.perf_counter() - t0,
        )

        run.advance(RunState.VALIDATE)
        products = self.validator.validate(candidates, source_text=text)
        run.advance(RunState.DONE)
        diagnostics = dict(diagnostics, candidates=len(candidates), products=len(products))
        return ExtractionResult(success=True, products=products, method=extractor.method, diagnostics=diagnostics)

    def _failure(self, run: ExtractionRun, exc: ExtractionError) -> ExtractionResult:
        run.fail(exc)
        extractor, _ = self._extractor_for(run.strategy)
        debug = dict(exc.debug)
        # Any AI failure can be re-run with the pattern strategy.
        if isinstance(exc, AIError):
            debug["retry_with"] = STRATEGY_PATTERN
        return ExtractionResult.failure(
            exc.message,
            error_code=exc.code,
            status_code=exc.http_status,
            method=extractor.method,
            debug=debug,
        )

    def extract_text(
        self,
        text: str,
        strategy: str = STRATEGY_PATTERN,
        *,
        action: str = "text_extraction",
    ) -> ExtractionResult:
        """Extract products from text the caller already has."""
        run = ExtractionRun(_check_strategy(strategy), label="text")
        try:
            run.advance(RunState.ACQUIRE_TEXT)
            text = text or ""
            if len(text.strip()) < self.config.min_pdf_chars:
                raise AcquisitionError(
                    AcquisitionErrorKind.INSUFFICIENT_TEXT,
                    "Not enough text to extract products from",
                    debug={"text_length": len(text.strip())},
                )
            diagnostics = {"kind": "text", "text_length": len(text)}
            return self._finish(run, text, diagnostics, action)
        except ExtractionError as exc:
            return self._failure(run, exc)

    def extract_file(
        self,
        data: bytes,
        kind: str,
        strategy: str = STRATEGY_PATTERN,
        file_name: Optional[str] = None,
    ) -> ExtractionResult:
        """Extract products from one PDF or image upload."""
        run = ExtractionRun(_check_strategy(strategy), label=file_name or kind)
        try:
            run.advance(RunState.ACQUIRE_TEXT)
            acquired = self.acquirer.extract(data, kind, file_name)
            return self._finish(run, acquired.text, acquired.diagnostics, f"{kind}_extraction")
        except ExtractionError as exc:
            return self._failure(run, exc)

    def extract_batch(self, files: Sequence[SourceFile], strategy: str = STRATEGY_PATTERN) -> ExtractionResult:
        """Run each file through its own pipeline and merge the products.

        Items keep input order regardless of BATCH_WORKERS. Failed items are
        listed in debug.failures; the batch fails only when every item fails.
        """
        _check_strategy(strategy)
        if not files:
            raise ValueError("extract_batch needs at least one file")

        def run_one(item: SourceFile) -> ExtractionResult:
            return self.extract_file(item.data, item.kind, strategy, item.file_name)

        workers = max(1, min(self.config.batch_workers, len(files)))
        t0 = time.perf_counter()
        if workers == 1:
            results = [run_one(item) for item in files]
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(run_one, files))

        products: List[ProductRecord] = []
        failures: List[Dict[str, Any]] = []
        items: List[Dict[str, Any]] = []
        for index, (item, result) in enumerate(zip(files, results)):
            name = item.file_name or f"image_{index}"
            if result.success:
                products.extend(result.products)
                items.append({"file_name": name, "products": len(result.products)})
            else:
                failures.append(
                    {
                        "index": index,
                        "file_name": name,
                        "error": result.error,
                        "error_code": result.error_code,
                    }
                )
        merged = dedupe_records(products)
        LOG.info(
            "Batch of %d file(s) finished in %.2fs: %d product(s), %d failure(s)",
            len(files),
            time.perf_counter() - t0,
            len(merged),
            len(failures),
        )

        method = self._extractor_for(strategy)[0].method
        if not merged:
            first = next(r for r in results if not r.success)
            return ExtractionResult.failure(
                first.error or "No valid product records could be extracted",
                error_code=first.error_code or "validation.empty",
                status_code=first.status_code,
                method=method,
                debug={"failures": failures},
            )
        return ExtractionResult(
            success=True,
            products=merged,
            method=method,
            diagnostics={
                "total_files": len(files),
                "succeeded": len(items),
                "extracted_products": len(merged),
                "items": items,
            },
            debug={"failures": failures} if failures else None,
        )
