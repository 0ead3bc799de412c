# tests/test_analysis_service.py

from __future__ import annotations

import asyncio
import json

import pytest

from conftest import make_plan
from models.analysis import BumpType, Language, Persona, TokenUsage
from services.analysis_service import (
    AnalysisService,
    build_analysis_prompt,
    number_lines,
    parse_json_from_response,
    strip_code_fence,
)
from services.exceptions import CollaboratorError
from services.llm_service import LLMReply, LLMService, ProviderHTTPError

ANALYSIS_REPLY = {
    "version": "1.2.0",
    "previousVersion": "1.1.0",
    "bumpType": "Minor",
    "summary": "Adds pricing",
    "changes": [
        {
            "id": "c1",
            "type": "feat",
            "title": "Pricing",
            "description": "New section",
            "lines": {"start": 9, "end": 0},
        }
    ],
}


class ScriptedLLM:
    def __init__(self, *texts: str, usage: TokenUsage | None = None):
        self.texts = list(texts)
        self.usage = usage
        self.prompts: list[str] = []
        self.schemas: list = []

    async def generate(self, prompt, temperature=0.2, response_schema=None):
        self.prompts.append(prompt)
        self.schemas.append(response_schema)
        return LLMReply(text=self.texts.pop(0), usage=self.usage)


def test_parse_json_from_fenced_or_noisy_reply() -> None:
    assert parse_json_from_response('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_from_response('Sure! {"a": 2} hope that helps') == {"a": 2}
    with pytest.raises(CollaboratorError):
        parse_json_from_response("no json here")
    with pytest.raises(CollaboratorError):
        parse_json_from_response("[1, 2]")


def test_strip_code_fence() -> None:
    assert strip_code_fence("```markdown\n# Doc\nBody\n```") == "# Doc\nBody"
    assert strip_code_fence("# Doc") == "# Doc"


def test_number_lines() -> None:
    assert number_lines("a\nb") == "1: a\n2: b"


def test_analysis_prompt_pins_known_version() -> None:
    prompt = build_analysis_prompt("old", "new", "English", "3.0.0", Persona.EXECUTIVE)
    assert '"3.0.0"' in prompt
    assert "1: new" in prompt
    assert "executive" in prompt


def test_analyze_diff_normalizes_reply() -> None:
    llm = ScriptedLLM(json.dumps(ANALYSIS_REPLY), usage=TokenUsage(prompt_tokens=5, output_tokens=7, total_tokens=12))

    result = asyncio.run(AnalysisService(llm).analyze_diff("old", "new", Language.ZH))

    assert result.version == "1.2.0"
    assert result.bump_type == BumpType.MINOR
    assert (result.changes[0].lines.start, result.changes[0].lines.end) == (1, 9)
    assert result.usage.total_tokens == 12
    assert "Simplified Chinese" in llm.prompts[0]
    assert llm.schemas[0]["type"] == "OBJECT"


def test_analyze_diff_pins_known_version() -> None:
    llm = ScriptedLLM(json.dumps(ANALYSIS_REPLY))
    result = asyncio.run(AnalysisService(llm).analyze_diff("old", "new", known_version="2.0.0"))
    assert result.version == "2.0.0"


def test_analyze_diff_rejects_schema_mismatch() -> None:
    llm = ScriptedLLM(json.dumps({"version": "1.0.0"}))
    with pytest.raises(CollaboratorError):
        asyncio.run(AnalysisService(llm).analyze_diff("old", "new"))


def test_create_patch_plan() -> None:
    reply = {
        "summary": "Insert pricing",
        "proposedVersion": "1.1.0",
        "bumpType": "Minor",
        "actions": [
            {"operation": "insert", "targetSectionHeader": "## Pricing", "reason": "asked", "description": "Add tiers"}
        ],
    }
    llm = ScriptedLLM(f"```json\n{json.dumps(reply)}\n```")

    plan = asyncio.run(AnalysisService(llm).create_patch_plan("# Doc", "Add pricing"))

    assert plan.proposed_version == "1.1.0"
    assert plan.describe_actions() == "1. [INSERT] Target: ## Pricing. Intent: Add tiers"


def test_generate_patched_document() -> None:
    llm = ScriptedLLM("```md\n# Doc\n\nPricing\n```")
    generated = asyncio.run(
        AnalysisService(llm).generate_patched_document("# Doc", "Add pricing", make_plan(), "1.1.0")
    )
    assert generated.text == "# Doc\n\nPricing"
    assert "1.1.0" in llm.prompts[0]
    assert llm.schemas[0] is None


def test_generate_patched_document_rejects_empty_reply() -> None:
    llm = ScriptedLLM("   ")
    with pytest.raises(CollaboratorError):
        asyncio.run(AnalysisService(llm).generate_patched_document("# Doc", "x", make_plan(), "1.1.0"))


# ========== LLM transport ==========


def test_missing_api_key_is_collaborator_error() -> None:
    service = LLMService({"provider": "gemini", "gemini": {"apiKey": ""}})
    with pytest.raises(CollaboratorError):
        asyncio.run(service.generate("hi"))


def test_retries_on_rate_limit_then_succeeds(monkeypatch) -> None:
    service = LLMService({"provider": "openai", "openai": {"apiKey": "sk-test"}})
    responses = [
        ProviderHTTPError("OpenAI", 429, "slow down"),
        {"choices": [{"message": {"content": "OK"}}], "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": 2}},
    ]

    async def fake_post(url, payload, headers, provider):
        item = responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def no_sleep(_seconds):
        return None

    monkeypatch.setattr(service, "_post_json", fake_post)
    monkeypatch.setattr("services.llm_service.asyncio.sleep", no_sleep)

    reply = asyncio.run(service.generate("hi"))
    assert reply.text == "OK"
    assert reply.usage.total_tokens == 2


def test_non_retryable_status_fails_fast(monkeypatch) -> None:
    service = LLMService({"provider": "vllm", "vllm": {"endpoint": "http://llm:8000"}})
    calls = []

    async def fake_post(url, payload, headers, provider):
        calls.append(url)
        raise ProviderHTTPError("vLLM", 401, "unauthorized")

    monkeypatch.setattr(service, "_post_json", fake_post)

    with pytest.raises(CollaboratorError) as exc_info:
        asyncio.run(service.generate("hi"))
    assert calls == ["http://llm:8000/v1/chat/completions"]
    assert exc_info.value.user_message.startswith("Analysis failed")


def test_analyze_diff_rejects_null_line_bounds() -> None:
    reply = {**ANALYSIS_REPLY, "changes": [{**ANALYSIS_REPLY["changes"][0], "lines": {"start": None, "end": 4}}]}
    llm = ScriptedLLM(json.dumps(reply))
    with pytest.raises(CollaboratorError):
        asyncio.run(AnalysisService(llm).analyze_diff("old", "new"))


class _CannedResponse:
    status = 200

    def __init__(self, body: str):
        self.body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def text(self):
        return self.body

    async def json(self, content_type=None):
        return json.loads(self.body)


class _CannedSession:
    def __init__(self, body: str):
        self.body = body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def post(self, url, json=None, headers=None):
        return _CannedResponse(self.body)


@pytest.mark.parametrize("body", ["<html>gateway busy</html>", "[1, 2]"])
def test_unusable_provider_body_is_collaborator_error(monkeypatch, body) -> None:
    service = LLMService({"provider": "openai", "openai": {"apiKey": "sk-test"}})
    monkeypatch.setattr("services.llm_service.aiohttp.ClientSession", lambda timeout=None: _CannedSession(body))

    with pytest.raises(CollaboratorError):
        asyncio.run(service.generate("hi"))
