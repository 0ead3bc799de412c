# tests/test_patch_workflow.py

from __future__ import annotations

import asyncio
import json

import pytest

from models.document import DocumentMode
from models.workflow import WorkflowState
from services.exceptions import (
    CollaboratorError,
    InvalidTransitionError,
    RequestSupersededError,
    ValidationError,
    WorkflowBusyError,
)
from services.metadata import AI_GUIDE_COMMENT, HISTORY_MARKER, DocumentBody, extract_history, strip_metadata


def _patch_document(repository, v1: str = "# Doc\n\nBody", patch_text: str = "Add a pricing section"):
    document = repository.get_active()
    return repository.update_document(document.id, v1=v1, patch_text=patch_text, mode=DocumentMode.PATCH)


def _global_document(repository, v1: str = "# Doc\n\nBody", v2: str = "# Doc\n\nBody\n\nMore"):
    document = repository.get_active()
    return repository.update_document(document.id, v1=v1, v2=v2)


# ========== Global mode ==========


def test_global_analysis_records_marker_free_snapshot(engine, repository, history) -> None:
    document = _global_document(repository)

    status = asyncio.run(engine.analyze(document.id))

    assert status.state == WorkflowState.COMMITTED
    assert status.result.version == "1.1.0"
    [record] = history.list()
    assert record.doc_id == document.id
    assert record.full_content == strip_metadata(document.v2)


def test_global_analysis_strips_history_before_sending(engine, repository, fake_analysis) -> None:
    v2 = f"# Doc\n\nNew body\n\n<br/>\n<hr/>\n\n{HISTORY_MARKER}\n\n### v1.0.0 (t)\nold"
    document = _global_document(repository, v2=v2)

    asyncio.run(engine.analyze(document.id))

    _, sent_v1, sent_v2, _ = fake_analysis.calls[0]
    assert HISTORY_MARKER not in sent_v2
    assert sent_v2 == "# Doc\n\nNew body"
    assert sent_v1 == "# Doc\n\nBody"


def test_global_analysis_requires_both_revisions(engine, repository, fake_analysis) -> None:
    document = _global_document(repository, v2="   ")
    with pytest.raises(ValidationError):
        asyncio.run(engine.analyze(document.id))
    assert fake_analysis.calls == []
    assert engine.status(document.id).state == WorkflowState.IDLE


def test_global_failure_returns_to_idle_without_history(engine, repository, history, fake_analysis) -> None:
    document = _global_document(repository)
    fake_analysis.fail_on.add("analyze")

    with pytest.raises(CollaboratorError):
        asyncio.run(engine.analyze(document.id))

    status = engine.status(document.id)
    assert status.state == WorkflowState.IDLE
    assert status.error == "Analysis failed. Please check your API Key and try again."
    assert not status.analysis_in_flight
    assert len(history) == 0
    assert repository.get_document(document.id) == document


def test_global_reanalysis_after_commit(engine, repository, history) -> None:
    document = _global_document(repository)
    asyncio.run(engine.analyze(document.id))
    asyncio.run(engine.analyze(document.id))
    assert len(history) == 2


# ========== Patch mode ==========


def test_patch_plan_then_confirm_commits_single_marker(engine, repository, history) -> None:
    document = _patch_document(repository)

    status = asyncio.run(engine.analyze(document.id))
    assert status.state == WorkflowState.PLAN_READY
    assert status.plan.proposed_version == "1.1.0"

    status = asyncio.run(engine.confirm_plan(document.id, "1.1.0"))
    assert status.state == WorkflowState.COMMITTED
    assert status.result.version == "1.1.0"
    assert status.plan is None

    v2 = repository.get_document(document.id).v2
    assert v2.count(HISTORY_MARKER) == 1
    fence = extract_history(v2).split("```json\n", 1)[1].split("\n```", 1)[0]
    assert json.loads(fence)["version"] == "1.1.0"

    [record] = history.list()
    assert record.version == "1.1.0"
    assert HISTORY_MARKER not in record.full_content
    assert AI_GUIDE_COMMENT in record.full_content


def test_patch_commit_leaves_v1_untouched(engine, repository) -> None:
    document = _patch_document(repository)
    asyncio.run(engine.request_plan(document.id))
    asyncio.run(engine.confirm_plan(document.id))
    assert repository.get_document(document.id).v1 == document.v1


def test_patch_commit_inherits_history_from_v1(engine, repository) -> None:
    first = _patch_document(repository)
    asyncio.run(engine.request_plan(first.id))
    asyncio.run(engine.confirm_plan(first.id, "1.0.0"))
    committed = repository.get_document(first.id).v2

    # Next round starts from the committed revision
    repository.update_document(first.id, v1=committed, v2="")
    asyncio.run(engine.request_plan(first.id))
    asyncio.run(engine.confirm_plan(first.id, "1.1.0"))

    v2 = repository.get_document(first.id).v2
    assert v2.count(HISTORY_MARKER) == 1
    assert DocumentBody.parse(v2).versions() == ["1.0.0", "1.1.0"]


def test_patch_generation_strips_echoed_metadata(engine, repository, fake_analysis) -> None:
    fake_analysis.generated_text = f"# Doc\n\nBody\n\n{HISTORY_MARKER}\n\n### v0.9.0 (t)\nstale"
    document = _patch_document(repository)
    asyncio.run(engine.request_plan(document.id))
    asyncio.run(engine.confirm_plan(document.id, "1.1.0"))

    body = DocumentBody.parse(repository.get_document(document.id).v2)
    assert body.versions() == ["1.1.0"]
    assert "stale" not in body.content


def test_confirm_uses_edited_proposed_version(engine, repository, fake_analysis) -> None:
    document = _patch_document(repository)
    asyncio.run(engine.request_plan(document.id))
    engine.update_proposed_version(document.id, " 2.0.0 ")

    status = asyncio.run(engine.confirm_plan(document.id))

    assert status.result.version == "2.0.0"
    assert ("generate", "# Doc\n\nBody", "Add a pricing section", "2.0.0") in fake_analysis.calls


def test_patch_requires_v1_and_fragment(engine, repository, fake_analysis) -> None:
    document = _patch_document(repository, patch_text="")
    with pytest.raises(ValidationError):
        asyncio.run(engine.request_plan(document.id))
    assert fake_analysis.calls == []


def test_planning_failure_leaves_document_unchanged(engine, repository, fake_analysis) -> None:
    document = _patch_document(repository)
    fake_analysis.fail_on.add("plan")

    with pytest.raises(CollaboratorError):
        asyncio.run(engine.request_plan(document.id))

    after = repository.get_document(document.id)
    assert (after.v1, after.v2) == (document.v1, document.v2)
    status = engine.status(document.id)
    assert status.state == WorkflowState.IDLE
    assert status.plan is None
    assert status.error


def test_generation_failure_keeps_plan_for_retry(engine, repository, history, fake_analysis) -> None:
    document = _patch_document(repository)
    asyncio.run(engine.request_plan(document.id))
    fake_analysis.fail_on.add("generate")

    with pytest.raises(CollaboratorError):
        asyncio.run(engine.confirm_plan(document.id))

    status = engine.status(document.id)
    assert status.state == WorkflowState.PLAN_READY
    assert status.plan is not None
    assert repository.get_document(document.id).v2 == ""
    assert len(history) == 0

    fake_analysis.fail_on.clear()
    assert asyncio.run(engine.confirm_plan(document.id)).state == WorkflowState.COMMITTED


def test_cancel_plan_returns_to_idle(engine, repository) -> None:
    document = _patch_document(repository)
    asyncio.run(engine.request_plan(document.id))

    status = engine.cancel_plan(document.id)

    assert status.state == WorkflowState.IDLE
    assert status.plan is None
    with pytest.raises(InvalidTransitionError):
        asyncio.run(engine.confirm_plan(document.id))


def test_confirm_without_plan_is_rejected(engine, repository) -> None:
    document = _patch_document(repository)
    with pytest.raises(InvalidTransitionError):
        asyncio.run(engine.confirm_plan(document.id, "1.0.0"))
    with pytest.raises(InvalidTransitionError):
        engine.update_proposed_version(document.id, "1.0.0")


def test_patch_operations_need_patch_mode(engine, repository) -> None:
    document = _global_document(repository)
    with pytest.raises(InvalidTransitionError):
        asyncio.run(engine.request_plan(document.id))


# ========== Concurrency ==========


def test_second_submission_while_in_flight_is_busy(engine, repository, fake_analysis) -> None:
    document = _global_document(repository)
    gate = asyncio.Event()

    async def hold(_name):
        await gate.wait()

    fake_analysis.before_return = hold

    async def scenario():
        first = asyncio.create_task(engine.analyze(document.id))
        await asyncio.sleep(0)
        assert engine.status(document.id).analysis_in_flight
        with pytest.raises(WorkflowBusyError):
            await engine.analyze(document.id)
        gate.set()
        return await first

    assert asyncio.run(scenario()).state == WorkflowState.COMMITTED


def test_reset_supersedes_in_flight_analysis(engine, repository, history, fake_analysis) -> None:
    document = _global_document(repository)
    gate = asyncio.Event()

    async def hold(_name):
        await gate.wait()

    fake_analysis.before_return = hold

    async def scenario():
        task = asyncio.create_task(engine.analyze(document.id))
        await asyncio.sleep(0)
        engine.reset(document.id)
        gate.set()
        with pytest.raises(RequestSupersededError):
            await task

    asyncio.run(scenario())
    status = engine.status(document.id)
    assert status.state == WorkflowState.IDLE
    assert status.result is None
    assert len(history) == 0


def test_deleting_document_discards_late_plan(engine, repository, fake_analysis) -> None:
    document = _patch_document(repository)
    gate = asyncio.Event()

    async def hold(_name):
        await gate.wait()

    fake_analysis.before_return = hold

    async def scenario():
        task = asyncio.create_task(engine.request_plan(document.id))
        await asyncio.sleep(0)
        repository.delete_document(document.id)
        gate.set()
        with pytest.raises(RequestSupersededError):
            await task

    asyncio.run(scenario())
    assert engine.current_result(document.id) is None


def test_runs_on_two_documents_do_not_interfere(engine, repository) -> None:
    a = _global_document(repository)
    b = repository.create_document(None, "Second")
    b = repository.update_document(b.id, v1="# B\n\none", v2="# B\n\ntwo")

    async def scenario():
        return await asyncio.gather(engine.analyze(a.id), engine.analyze(b.id))

    first, second = asyncio.run(scenario())
    assert first.document_id == a.id and second.document_id == b.id
    assert first.state == second.state == WorkflowState.COMMITTED


def test_mode_switch_starts_fresh_session(engine, repository) -> None:
    document = _patch_document(repository)
    asyncio.run(engine.request_plan(document.id))

    repository.set_mode(document.id, DocumentMode.GLOBAL)
    status = engine.status(document.id)

    assert status.mode == DocumentMode.GLOBAL
    assert status.state == WorkflowState.IDLE
    assert status.plan is None


def test_mode_switch_discards_in_flight_generation(engine, repository, history, fake_analysis) -> None:
    document = _patch_document(repository)
    asyncio.run(engine.request_plan(document.id))
    gate = asyncio.Event()

    async def hold(name):
        if name == "generate":
            await gate.wait()

    fake_analysis.before_return = hold

    async def scenario():
        task = asyncio.create_task(engine.confirm_plan(document.id))
        await asyncio.sleep(0)
        repository.set_mode(document.id, DocumentMode.GLOBAL)
        gate.set()
        with pytest.raises(RequestSupersededError):
            await task

    asyncio.run(scenario())
    assert repository.get_document(document.id).v2 == ""
    assert len(history) == 0
    status = engine.status(document.id)
    assert status.mode == DocumentMode.GLOBAL
    assert status.state == WorkflowState.IDLE


def test_global_analysis_records_title_edited_mid_flight(engine, repository, history, fake_analysis) -> None:
    document = _global_document(repository)
    gate = asyncio.Event()

    async def hold(_name):
        await gate.wait()

    fake_analysis.before_return = hold

    async def scenario():
        task = asyncio.create_task(engine.analyze(document.id))
        await asyncio.sleep(0)
        repository.rename_document(document.id, "Renamed plan")
        gate.set()
        return await task

    assert asyncio.run(scenario()).state == WorkflowState.COMMITTED
    [record] = history.list()
    assert record.doc_title == "Renamed plan"


# ========== Unexpected failures ==========


def _raise_type_error_on(stage: str):
    async def malformed(name):
        if name == stage:
            raise TypeError("int() argument must be a string or a number, not 'NoneType'")

    return malformed


def test_unexpected_analysis_error_returns_to_idle(engine, repository, history, fake_analysis) -> None:
    document = _global_document(repository)
    fake_analysis.before_return = _raise_type_error_on("analyze")

    with pytest.raises(TypeError):
        asyncio.run(engine.analyze(document.id))

    status = engine.status(document.id)
    assert status.state == WorkflowState.IDLE
    assert not status.analysis_in_flight
    assert status.error == "Analysis failed. Please check your API Key and try again."
    assert len(history) == 0

    fake_analysis.before_return = None
    assert asyncio.run(engine.analyze(document.id)).state == WorkflowState.COMMITTED


def test_unexpected_planning_error_returns_to_idle(engine, repository, fake_analysis) -> None:
    document = _patch_document(repository)
    fake_analysis.before_return = _raise_type_error_on("plan")

    with pytest.raises(TypeError):
        asyncio.run(engine.request_plan(document.id))

    status = engine.status(document.id)
    assert status.state == WorkflowState.IDLE
    assert not status.analysis_in_flight
    assert status.plan is None


def test_unexpected_generation_error_keeps_plan_for_retry(engine, repository, history, fake_analysis) -> None:
    document = _patch_document(repository)
    asyncio.run(engine.request_plan(document.id))
    fake_analysis.before_return = _raise_type_error_on("analyze")

    with pytest.raises(TypeError):
        asyncio.run(engine.confirm_plan(document.id))

    status = engine.status(document.id)
    assert status.state == WorkflowState.PLAN_READY
    assert status.plan is not None
    assert not status.generation_in_flight
    assert repository.get_document(document.id).v2 == ""
    assert len(history) == 0

    fake_analysis.before_return = None
    assert asyncio.run(engine.confirm_plan(document.id)).state == WorkflowState.COMMITTED
