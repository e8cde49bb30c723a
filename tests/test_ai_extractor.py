from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import httpx
import openai
import pytest

from inventory_intake.extraction.ai import AIExtractor, AIExtractorConfig, build_prompt
from inventory_intake.extraction.errors import AIError, AIErrorKind
from inventory_intake.usage import UsageMeter


class _FakeCompletions:
    def __init__(self, content: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.content = content
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(
            id="chatcmpl-test",
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))],
            usage=SimpleNamespace(prompt_tokens=1200, completion_tokens=300, total_tokens=1500),
        )


def _client(completions: _FakeCompletions) -> Any:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def _extractor(completions: _FakeCompletions, meter: Optional[UsageMeter] = None, api_key: str = "sk-test") -> AIExtractor:
    return AIExtractor(AIExtractorConfig(api_key=api_key), client=_client(completions), meter=meter)


_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def test_prompt_is_deterministic_and_embeds_text() -> None:
    text = "YAMAHA FG830 ナチュラル 新品 45,000円"
    assert build_prompt(text) == build_prompt(text)
    prompt = build_prompt(text)
    assert text in prompt
    assert "ギター" in prompt and "ジャンク" in prompt
    assert "Never guess" in prompt


def test_fenced_response_becomes_records_and_usage_is_logged() -> None:
    content = (
        "Here you go:\n```json\n"
        '[{"category":"ギター","product_name":"YAMAHA FG830","manufacturer":"YAMAHA",'
        '"model_number":"FG830","color":"ナチュラル","condition":"新品","price":45000,"supplier":""},'
        '{"product_name":"","model_number":"","price":"100"}]\n```\nHope that helps'
    )
    completions = _FakeCompletions(content)
    meter = UsageMeter()

    records = _extractor(completions, meter).extract("YAMAHA FG830 45,000円", action="pdf_extraction")

    assert len(records) == 1
    assert records[0].product_name == "YAMAHA FG830"
    assert records[0].price == "45000"
    assert records[0].supplier is None

    call = completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["temperature"] == 0.1
    assert call["max_tokens"] == 4000
    assert call["messages"][-1]["content"].endswith("YAMAHA FG830 45,000円")

    entries = meter.store.entries()
    assert len(entries) == 1
    assert entries[0].prompt_tokens == 1200
    assert entries[0].completion_tokens == 300
    assert entries[0].user_action == "pdf_extraction"


def test_missing_key_fails_before_any_call() -> None:
    completions = _FakeCompletions("[]")
    with pytest.raises(AIError) as excinfo:
        _extractor(completions, api_key="").extract("some text")
    assert excinfo.value.kind is AIErrorKind.MISSING_CREDENTIAL
    assert excinfo.value.http_status == 503
    assert completions.calls == []


def test_no_identifier_records_raise_but_usage_is_still_logged() -> None:
    meter = UsageMeter()
    completions = _FakeCompletions('[{"manufacturer": "YAMAHA", "price": "45000"}]')

    with pytest.raises(AIError) as excinfo:
        _extractor(completions, meter).extract("YAMAHA 45,000円")

    err = excinfo.value
    assert err.kind is AIErrorKind.NO_VALID_RECORDS
    assert err.debug["extracted_count"] == 1
    assert err.debug["raw_products"] == [{"manufacturer": "YAMAHA", "price": "45000"}]
    assert len(meter.store) == 1


def test_unparseable_response_is_malformed_json() -> None:
    with pytest.raises(AIError) as excinfo:
        _extractor(_FakeCompletions("I cannot help with that.")).extract("text text text")
    assert excinfo.value.kind is AIErrorKind.MALFORMED_JSON


def test_empty_content_is_service_error() -> None:
    with pytest.raises(AIError) as excinfo:
        _extractor(_FakeCompletions("   ")).extract("text text text")
    assert excinfo.value.kind is AIErrorKind.SERVICE_ERROR


@pytest.mark.parametrize(
    "error",
    [
        openai.APIConnectionError(request=_REQUEST),
        openai.APITimeoutError(request=_REQUEST),
        openai.APIStatusError(
            "rate limited",
            response=httpx.Response(429, request=_REQUEST, text="slow down"),
            body=None,
        ),
    ],
)
def test_sdk_errors_become_service_errors(error: Exception) -> None:
    meter = UsageMeter()
    completions = _FakeCompletions(error=error)

    with pytest.raises(AIError) as excinfo:
        _extractor(completions, meter).extract("text text text")

    assert excinfo.value.kind is AIErrorKind.SERVICE_ERROR
    assert excinfo.value.http_status == 502
    assert len(completions.calls) == 1
    assert len(meter.store) == 0


def test_method_names_the_model() -> None:
    extractor = AIExtractor(AIExtractorConfig(api_key="k", model_name="gpt-4o"))
    assert extractor.method == "ai (gpt-4o)"
