"""
Patch Workflow - Per-document state machines for Global analysis and Smart Patch

Global:  IDLE -> ANALYZING -> COMMITTED
Patch:   IDLE -> PLANNING -> PLAN_READY -> GENERATING -> COMMITTED

Each invocation is issued a request token. A response is applied only while
its token is still the session's current token; reset, plan cancellation,
mode switches and document deletion bump the token so late responses are
discarded. A run mutates the document at most once, after every external
call has succeeded.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, ClassVar, Iterator, Union

from models.analysis import AnalysisResult, Language
from models.document import Document, DocumentMode
from models.history import HistoryRecord
from models.patch import PatchPlan
from models.workflow import WorkflowState, WorkflowStatus

from .analysis_service import AnalysisService
from .document_repository import DocumentRepository
from .exceptions import (
    GENERIC_COLLABORATOR_MESSAGE,
    CollaboratorError,
    InvalidTransitionError,
    RequestSupersededError,
    ValidationError,
    WorkflowBusyError,
)
from .history_store import HistoryStore
from .metadata import DocumentBody, ensure_guide_comment, extract_history, parse_history_entries, strip_metadata

logger = logging.getLogger(__name__)

ERROR_EMPTY = "Please provide content for both V1 and V2."
ERROR_PATCH_EMPTY = "Please provide V1 content and the patch fragment."

State = WorkflowState


@dataclass
class WorkflowSession:
    """Mutable workflow state for one document"""

    document_id: str
    mode: DocumentMode
    state: WorkflowState = WorkflowState.IDLE
    plan: PatchPlan | None = None
    result: AnalysisResult | None = None
    error: str | None = None
    token: int = 0
    analysis_in_flight: bool = False
    generation_in_flight: bool = False

    def issue_token(self) -> int:
        self.token += 1
        return self.token

    def is_current(self, token: int) -> bool:
        return self.token == token

    def ensure_current(self, token: int):
        if not self.is_current(token):
            raise RequestSupersededError(f"Request for document {self.document_id} was superseded")

    def invalidate(self):
        """Discard anything in flight and return to idle"""
        self.token += 1
        self.analysis_in_flight = False
        self.generation_in_flight = False
        self.plan = None
        self.state = WorkflowState.IDLE

    def status(self) -> WorkflowStatus:
        return WorkflowStatus(
            document_id=self.document_id,
            mode=self.mode,
            state=self.state,
            plan=self.plan,
            result=self.result,
            error=self.error,
            analysis_in_flight=self.analysis_in_flight,
            generation_in_flight=self.generation_in_flight,
        )


class _Workflow:
    """Shared plumbing for both workflow variants"""

    mode: ClassVar[DocumentMode]
    transitions: ClassVar[dict[WorkflowState, frozenset[WorkflowState]]]

    def __init__(self, engine: "WorkflowEngine"):
        self.engine = engine

    def move(self, session: WorkflowSession, target: WorkflowState):
        allowed = self.transitions.get(session.state, frozenset())
        if target not in allowed:
            raise InvalidTransitionError(
                f"{self.mode.value} workflow cannot go from {session.state.value} to {target.value}"
            )
        logger.debug("Document %s: %s -> %s", session.document_id, session.state.value, target.value)
        session.state = target

    def fail(self, session: WorkflowSession, token: int, error: Exception):
        """Record a failed run on the session unless it was superseded"""
        if not session.is_current(token):
            return
        if isinstance(error, CollaboratorError):
            logger.error("Document %s: %s", session.document_id, error.detail)
            session.error = error.user_message
        else:
            logger.exception("Document %s: unexpected failure", session.document_id)
            session.error = GENERIC_COLLABORATOR_MESSAGE

    @contextmanager
    def attempt(
        self,
        session: WorkflowSession,
        token: int,
        flag: str,
        running: WorkflowState,
        resume: WorkflowState,
    ) -> Iterator[None]:
        """Guard one run: any exit that did not commit returns the session to `resume`"""
        setattr(session, flag, True)
        try:
            yield
        except Exception as e:
            self.fail(session, token, e)
            raise
        finally:
            if session.is_current(token):
                setattr(session, flag, False)
                if session.state == running:
                    self.move(session, resume)

    def record_history(self, document: Document, result: AnalysisResult, content: str):
        self.engine.history.append(
            HistoryRecord(
                doc_id=document.id,
                version=result.version,
                summary=result.summary,
                full_content=content,
                doc_title=document.title or "Untitled",
            )
        )


class GlobalWorkflow(_Workflow):
    """Single-shot analysis of the document's two revisions"""

    mode = DocumentMode.GLOBAL
    transitions = {
        State.IDLE: frozenset({State.ANALYZING}),
        State.ANALYZING: frozenset({State.COMMITTED, State.IDLE}),
        State.COMMITTED: frozenset({State.ANALYZING, State.IDLE}),
    }

    async def run(self, document: Document, session: WorkflowSession) -> WorkflowStatus:
        if not document.v1.strip() or not document.v2.strip():
            raise ValidationError(ERROR_EMPTY)
        if session.analysis_in_flight:
            raise WorkflowBusyError("An analysis is already running for this document")

        self.move(session, State.ANALYZING)
        token = session.issue_token()
        session.error = None

        clean_v1 = strip_metadata(document.v1)
        clean_v2 = strip_metadata(document.v2)
        with self.attempt(session, token, "analysis_in_flight", State.ANALYZING, State.IDLE):
            analysis = self.engine.analysis_factory()
            result = await analysis.analyze_diff(
                clean_v1,
                clean_v2,
                self.engine.language(),
                None,
                document.persona,
            )
            session.ensure_current(token)
            # The title may have been edited while the call was out
            document = self.engine.repository.get_document(document.id)
            self.record_history(document, result, clean_v2)
            session.result = result
            self.move(session, State.COMMITTED)

        logger.info("Document %s analyzed as v%s", document.id, result.version)
        return session.status()


class PatchWorkflow(_Workflow):
    """Plan, review, regenerate and re-analyze a document from a patch fragment"""

    mode = DocumentMode.PATCH
    transitions = {
        State.IDLE: frozenset({State.PLANNING}),
        State.PLANNING: frozenset({State.PLAN_READY, State.IDLE}),
        State.PLAN_READY: frozenset({State.GENERATING, State.PLANNING, State.IDLE}),
        State.GENERATING: frozenset({State.COMMITTED, State.PLAN_READY}),
        State.COMMITTED: frozenset({State.PLANNING, State.IDLE}),
    }

    async def request_plan(self, document: Document, session: WorkflowSession) -> WorkflowStatus:
        if not document.v1.strip() or not document.patch_text.strip():
            raise ValidationError(ERROR_PATCH_EMPTY)
        if session.analysis_in_flight:
            raise WorkflowBusyError("A plan is already being prepared for this document")

        self.move(session, State.PLANNING)
        token = session.issue_token()
        session.error = None
        session.plan = None

        with self.attempt(session, token, "analysis_in_flight", State.PLANNING, State.IDLE):
            analysis = self.engine.analysis_factory()
            plan = await analysis.create_patch_plan(
                strip_metadata(document.v1),
                document.patch_text,
                self.engine.language(),
            )
            session.ensure_current(token)
            session.plan = plan
            self.move(session, State.PLAN_READY)

        logger.info("Document %s: plan with %d action(s), proposed v%s", document.id, len(plan.actions), plan.proposed_version)
        return session.status()

    def update_proposed_version(self, session: WorkflowSession, version: str) -> WorkflowStatus:
        if session.state != State.PLAN_READY or session.plan is None:
            raise InvalidTransitionError("No plan is awaiting review")
        if not version.strip():
            raise ValidationError("Version is required")
        session.plan = session.plan.model_copy(update={"proposed_version": version.strip()})
        return session.status()

    def cancel(self, session: WorkflowSession) -> WorkflowStatus:
        """Leave review without confirming; the plan is discarded"""
        if session.state != State.PLAN_READY:
            raise InvalidTransitionError("No plan is awaiting review")
        session.issue_token()
        session.plan = None
        self.move(session, State.IDLE)
        return session.status()

    async def confirm(
        self,
        document: Document,
        session: WorkflowSession,
        target_version: str | None = None,
    ) -> WorkflowStatus:
        if session.generation_in_flight:
            raise WorkflowBusyError("A patch is already being generated for this document")
        if session.state != State.PLAN_READY or session.plan is None:
            raise InvalidTransitionError("No plan is awaiting confirmation")

        plan = session.plan
        version = (target_version or plan.proposed_version or "").strip()
        if not version:
            raise ValidationError("Target version is required")

        self.move(session, State.GENERATING)
        token = session.issue_token()
        session.error = None

        clean_v1 = strip_metadata(document.v1)
        inherited_history = extract_history(document.v1)
        language = self.engine.language()
        with self.attempt(session, token, "generation_in_flight", State.GENERATING, State.PLAN_READY):
            analysis = self.engine.analysis_factory()
            generated = await analysis.generate_patched_document(
                clean_v1,
                document.patch_text,
                plan,
                version,
                language,
            )
            session.ensure_current(token)
            # The generator may echo stale metadata back
            candidate = strip_metadata(ensure_guide_comment(generated.text))
            result = await analysis.analyze_diff(clean_v1, candidate, language, version, document.persona)
            session.ensure_current(token)
            self.commit(document.id, session, candidate, inherited_history, result)

        return session.status()

    def commit(
        self,
        document_id: str,
        session: WorkflowSession,
        content: str,
        inherited_history: str,
        result: AnalysisResult,
    ):
        """Single write: new v2 with stacked history, snapshot, current result"""
        body = DocumentBody(
            content=content,
            history=parse_history_entries(inherited_history),
            history_text=inherited_history,
        ).with_entry(result)

        document = self.engine.repository.update_document(document_id, v2=body.serialize())
        self.record_history(document, result, content)
        session.result = result
        session.plan = None
        self.move(session, State.COMMITTED)
        logger.info("Document %s committed v%s (%d history entries)", document_id, result.version, len(body.history))


WorkflowVariant = Union[GlobalWorkflow, PatchWorkflow]


class WorkflowEngine:
    """Owns workflow sessions and dispatches on each document's mode"""

    def __init__(
        self,
        repository: DocumentRepository,
        history: HistoryStore,
        analysis_factory: Callable[[], AnalysisService],
        language: Callable[[], Language] = lambda: Language.EN,
    ):
        self.repository = repository
        self.history = history
        self.analysis_factory = analysis_factory
        self.language = language
        self._sessions: dict[str, WorkflowSession] = {}
        self._variants: dict[DocumentMode, WorkflowVariant] = {
            DocumentMode.GLOBAL: GlobalWorkflow(self),
            DocumentMode.PATCH: PatchWorkflow(self),
        }
        repository.on_delete(self.invalidate)
        repository.on_mode_change(self.invalidate)

    def variant(self, mode: DocumentMode) -> WorkflowVariant:
        return self._variants[mode]

    def _session_for(self, document: Document) -> WorkflowSession:
        session = self._sessions.get(document.id)
        if session is not None and session.mode != document.mode:
            # Switching modes supersedes whatever the old variant was doing
            session.invalidate()
            session = None
        if session is None:
            session = WorkflowSession(document_id=document.id, mode=document.mode)
            self._sessions[document.id] = session
        return session

    def _patch_session(self, document_id: str) -> tuple[Document, WorkflowSession, PatchWorkflow]:
        document = self.repository.get_document(document_id)
        if document.mode != DocumentMode.PATCH:
            raise InvalidTransitionError("Document is not in patch mode")
        return document, self._session_for(document), self._variants[DocumentMode.PATCH]

    def status(self, document_id: str) -> WorkflowStatus:
        return self._session_for(self.repository.get_document(document_id)).status()

    def current_result(self, document_id: str) -> AnalysisResult | None:
        session = self._sessions.get(document_id)
        return session.result if session else None

    async def analyze(self, document_id: str) -> WorkflowStatus:
        """Global mode runs a single-shot analysis; patch mode requests a plan"""
        document = self.repository.get_document(document_id)
        session = self._session_for(document)
        if document.mode == DocumentMode.GLOBAL:
            return await self._variants[DocumentMode.GLOBAL].run(document, session)
        return await self._variants[DocumentMode.PATCH].request_plan(document, session)

    async def request_plan(self, document_id: str) -> WorkflowStatus:
        document, session, workflow = self._patch_session(document_id)
        return await workflow.request_plan(document, session)

    def update_proposed_version(self, document_id: str, version: str) -> WorkflowStatus:
        _, session, workflow = self._patch_session(document_id)
        return workflow.update_proposed_version(session, version)

    def cancel_plan(self, document_id: str) -> WorkflowStatus:
        _, session, workflow = self._patch_session(document_id)
        return workflow.cancel(session)

    async def confirm_plan(self, document_id: str, target_version: str | None = None) -> WorkflowStatus:
        document, session, workflow = self._patch_session(document_id)
        return await workflow.confirm(document, session, target_version)

    def reset(self, document_id: str) -> WorkflowStatus:
        """Back to input: drop plan, result and error, discard anything in flight"""
        session = self._session_for(self.repository.get_document(document_id))
        session.invalidate()
        session.result = None
        session.error = None
        return session.status()

    def invalidate(self, document_id: str):
        session = self._sessions.pop(document_id, None)
        if session is not None:
            session.invalidate()
            logger.info("Workflow for document %s invalidated", document_id)
