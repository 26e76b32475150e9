from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from dialectic.errors import ContextWindowError, DocumentIdentityError, RagServiceError
from dialectic.models.contribution import DialecticContribution
from dialectic.models.generation_job import GenerationJob, JobStatus, JobType
from dialectic.repositories.generation_job_repository import GenerationJobRepository
from dialectic.schemas.documents import ResourceDocument
from dialectic.schemas.model_call import (
    ChatMessage,
    ModelResponse,
    PromptConstructionPayload,
    ProviderConfig,
    RagContextResult,
)
from dialectic.services import model_call_service
from dialectic.services.job_dependencies import JobDependencies
from dialectic.services.model_call_service import compress_to_fit, build_chat_request, execute_model_call_and_save

PROVIDER = ProviderConfig(
    model_id="model-1",
    api_identifier="claude-sonnet-4-20250514",
    name="claude",
    context_window_tokens=100,
    max_output_tokens=50,
)


def _prompt(documents=None, history=None):
    return PromptConstructionPayload(
        system_instruction="You are a careful analyst.",
        conversation_history=history or [],
        resource_documents=documents or [],
        current_user_prompt="Write the business case.",
    )


def _doc(id, content, document_key="business_case", stage="thesis"):
    return ResourceDocument(id=id, content=content, document_key=document_key, type="document", stage_slug=stage)


def _deps(count_tokens=None, content="# Business case", finish_reason="stop", embed=None):
    model_client = MagicMock()
    model_client.call_unified_ai_model.return_value = ModelResponse(
        content=content, finish_reason=finish_reason, input_tokens=10, output_tokens=20
    )
    rag_service = MagicMock()
    rag_service.get_context_for_model.return_value = RagContextResult(context="summary")
    return JobDependencies(
        notifications=MagicMock(),
        jobs_repo=GenerationJobRepository,
        model_client=model_client,
        rag_service=rag_service,
        embed=embed or (lambda text: None),
        count_tokens=count_tokens or MagicMock(return_value=10),
        upload=MagicMock(return_value=("key", "s3://bucket/key")),
        download=MagicMock(return_value=b""),
        delete=MagicMock(return_value=1),
        max_continuations=5,
    )


@pytest.fixture
def execute_job(make_job):
    def _make(**overrides):
        payload = dict(
            prompt_template_id="prompt-1",
            output_type="business_case",
            document_key="business_case",
            canonicalPathParams={},
            planner_metadata={"recipe_step_id": "step-1", "recipe_step_key": "draft_business_case"},
            model_slug="claude",
        )
        payload.update(overrides)
        parent = make_job(job_type=JobType.PLAN, status=JobStatus.WAITING_FOR_CHILDREN)
        return make_job(job_type=JobType.EXECUTE, parent_job_id=parent.id, **payload)
    return _make


class TestCompressToFit:

    def test_request_at_input_allowance_is_untouched(self, db):
        deps = _deps(count_tokens=MagicMock(return_value=50))
        request = build_chat_request(_prompt([_doc("a", "alpha"), _doc("b", "beta")]), PROVIDER)
        job = SimpleNamespace(id="job-1", session_id="session-1", stage_slug="thesis", payload={})

        result = compress_to_fit(db, job, request, PROVIDER, deps)

        assert result is request
        deps.rag_service.get_context_for_model.assert_not_called()

    def test_single_compression_of_lowest_scored_document(self, db):
        vectors = {"Write the business case.": [1.0, 0.0], "far": [0.0, 1.0], "near": [1.0, 0.2]}
        deps = _deps(count_tokens=MagicMock(side_effect=[500, 40]), embed=lambda text: vectors.get(text))
        request = build_chat_request(_prompt([_doc("far-doc", "far"), _doc("near-doc", "near")]), PROVIDER)
        job = SimpleNamespace(id="job-1", session_id="session-1", stage_slug="thesis", payload={})

        result = compress_to_fit(db, job, request, PROVIDER, deps)

        deps.rag_service.get_context_for_model.assert_called_once()
        compressed_docs = deps.rag_service.get_context_for_model.call_args.args[0]
        assert [d.id for d in compressed_docs] == ["near-doc"]
        assert [d.id for d in result.resource_documents] == ["far-doc", "near-doc"]
        assert [d.content for d in result.resource_documents] == ["far", "summary"]

    def test_compression_order_follows_effective_score(self, db):
        rules = [
            {"document_key": "business_case", "relevance": 0.9},
            {"document_key": "feature_spec", "relevance": 0.1},
            {"document_key": "technical_approach", "relevance": 0.5},
        ]
        deps = _deps(count_tokens=MagicMock(side_effect=[500, 400, 300, 50]))
        docs = [
            _doc("bc", "a", document_key="business_case"),
            _doc("fs", "b", document_key="feature_spec"),
            _doc("ta", "c", document_key="technical_approach"),
        ]
        request = build_chat_request(_prompt(docs), PROVIDER)
        job = SimpleNamespace(id="job-1", session_id="session-1", stage_slug="thesis",
                              payload={"inputs_relevance": rules})

        result = compress_to_fit(db, job, request, PROVIDER, deps)

        order = [call.args[0][0].id for call in deps.rag_service.get_context_for_model.call_args_list]
        assert order == ["fs", "ta", "bc"]
        assert [d.id for d in result.resource_documents] == ["bc", "fs", "ta"]

    def test_output_reservation_counts_against_the_window(self, db):
        # 95 tokens fit a 100 token window but not once 50 are reserved for output.
        deps = _deps(count_tokens=MagicMock(side_effect=[95, 30]))
        request = build_chat_request(_prompt([_doc("a", "alpha")]), PROVIDER)
        job = SimpleNamespace(id="job-1", session_id="session-1", stage_slug="thesis", payload={})

        result = compress_to_fit(db, job, request, PROVIDER, deps)

        deps.rag_service.get_context_for_model.assert_called_once()
        assert result.resource_documents[0].content == "summary"

    def test_one_token_over_allowance_fails_without_calling_model(self, db, execute_job):
        deps = _deps(count_tokens=MagicMock(side_effect=[51, 51]))

        with pytest.raises(ContextWindowError):
            execute_model_call_and_save(db, execute_job(), _prompt([_doc("a", "alpha")]), PROVIDER, deps, "user-1")

        deps.model_client.call_unified_ai_model.assert_not_called()
        deps.upload.assert_not_called()

    def test_middle_history_is_compressed_and_anchors_kept(self, db):
        history = [
            ChatMessage(role="user", content="ORIGINAL USER"),
            ChatMessage(role="assistant", content="FIRST ASSIST"),
            ChatMessage(role="user", content="middle question"),
            ChatMessage(role="assistant", content="middle answer"),
            ChatMessage(role="user", content="tail question"),
            ChatMessage(role="assistant", content="TAIL ASSIST 1"),
            ChatMessage(role="assistant", content="TAIL ASSIST 2"),
            ChatMessage(role="user", content="Please continue."),
        ]
        deps = _deps(count_tokens=MagicMock(side_effect=[500, 400, 40]))
        request = build_chat_request(_prompt(history=history), PROVIDER)
        job = SimpleNamespace(id="job-1", session_id="session-1", stage_slug="thesis", payload={})

        result = compress_to_fit(db, job, request, PROVIDER, deps)

        sent = [call.args[0][0].content for call in deps.rag_service.get_context_for_model.call_args_list]
        assert sent == ["middle question", "middle answer"]
        assert [m.role for m in result.conversation_history] == [m.role for m in history]
        assert [m.content for m in result.conversation_history] == [
            "ORIGINAL USER", "FIRST ASSIST", "summary", "summary",
            "tail question", "TAIL ASSIST 1", "TAIL ASSIST 2", "Please continue.",
        ]

    def test_documents_compress_before_equally_scored_history(self, db):
        history = [ChatMessage(role="user" if i % 2 == 0 else "assistant", content=f"m{i}") for i in range(7)]
        deps = _deps(count_tokens=MagicMock(side_effect=[500, 400, 40]))
        request = build_chat_request(_prompt([_doc("a", "alpha")], history=history), PROVIDER)
        job = SimpleNamespace(id="job-1", session_id="session-1", stage_slug="thesis", payload={})

        compress_to_fit(db, job, request, PROVIDER, deps)

        ids = [call.args[0][0].id for call in deps.rag_service.get_context_for_model.call_args_list]
        assert ids == ["a", "history-2"]

    def test_exhausted_candidates_raise_context_window_error(self, db):
        deps = _deps(count_tokens=MagicMock(return_value=500))
        request = build_chat_request(_prompt([_doc("a", "alpha")]), PROVIDER)
        job = SimpleNamespace(id="job-1", session_id="session-1", stage_slug="thesis", payload={})

        with pytest.raises(ContextWindowError):
            compress_to_fit(db, job, request, PROVIDER, deps)

        deps.rag_service.get_context_for_model.assert_called_once()

    def test_document_without_identity_is_not_compressed(self, db):
        deps = _deps(count_tokens=MagicMock(return_value=500))
        anonymous = ResourceDocument(id="anon", content="text", storage_path="somewhere", file_name="x.md")
        request = build_chat_request(_prompt([anonymous]), PROVIDER)
        job = SimpleNamespace(id="job-1", session_id="session-1", stage_slug="thesis", payload={})

        with pytest.raises(DocumentIdentityError):
            compress_to_fit(db, job, request, PROVIDER, deps)

        deps.rag_service.get_context_for_model.assert_not_called()

    def test_identity_is_enriched_from_storage(self, db, project_session):
        db.add(DialecticContribution(
            id="c1", session_id="session-1", stage="thesis", iteration_number=1,
            contribution_type="business_case", document_key="business_case",
            storage_path="somewhere", file_name="x.md",
        ))
        db.commit()
        deps = _deps(count_tokens=MagicMock(side_effect=[500, 50]))
        anonymous = ResourceDocument(id="anon", content="text", storage_path="somewhere", file_name="x.md")
        request = build_chat_request(_prompt([anonymous]), PROVIDER)
        job = SimpleNamespace(id="job-1", session_id="session-1", stage_slug="thesis", payload={})

        result = compress_to_fit(db, job, request, PROVIDER, deps)

        compressed = result.resource_documents[0]
        assert compressed.document_key == "business_case"
        assert compressed.stage_slug == "thesis"
        assert compressed.content == "summary"

    def test_rag_error_is_raised(self, db):
        deps = _deps(count_tokens=MagicMock(return_value=500))
        deps.rag_service.get_context_for_model.return_value = RagContextResult(error="overloaded")
        request = build_chat_request(_prompt([_doc("a", "alpha")]), PROVIDER)
        job = SimpleNamespace(id="job-1", session_id="session-1", stage_slug="thesis", payload={})

        with pytest.raises(RagServiceError):
            compress_to_fit(db, job, request, PROVIDER, deps)


class TestExecuteModelCallAndSave:

    def test_saves_contribution_and_enqueues_render(self, db, execute_job):
        job = execute_job()
        deps = _deps()

        results = execute_model_call_and_save(db, job, _prompt(), PROVIDER, deps, "user-1")

        contribution = db.get(DialecticContribution, results["contribution_id"])
        assert contribution.document_key == "business_case"
        assert contribution.document_relationships["thesis"] == contribution.id
        assert contribution.file_name == "claude_0_business_case.md"
        assert contribution.storage_path.endswith("/thesis/contributions")
        deps.upload.assert_called_once()
        assert deps.upload.call_args.args[1] == b"# Business case"

        siblings = GenerationJobRepository.list_children(db, job.parent_job_id)
        render = [s for s in siblings if s.job_type == JobType.RENDER]
        assert len(render) == 1
        assert render[0].payload["documentIdentity"] == contribution.id
        assert render[0].payload["sourceContributionId"] == contribution.id
        assert render[0].payload["documentKey"] == "business_case"

        db.refresh(job)
        assert job.status == JobStatus.COMPLETED
        assert job.results["will_continue"] is False

    def test_emits_chunk_event_for_document_outputs(self, db, execute_job):
        job = execute_job()
        deps = _deps()

        execute_model_call_and_save(db, job, _prompt(), PROVIDER, deps, "user-1")

        payload, target = deps.notifications.send_document_centric_notification.call_args.args
        assert target == "user-1"
        assert payload["type"] == "execute_chunk_completed"
        assert payload["document_key"] == "business_case"
        assert payload["modelId"] == "model-1"
        assert payload["step_key"] == "draft_business_case"
        assert set(payload) == {"type", "sessionId", "stageSlug", "iterationNumber", "job_id", "step_key",
                                "document_key", "modelId"}

    def test_no_chunk_event_without_owner(self, db, execute_job):
        deps = _deps()

        execute_model_call_and_save(db, execute_job(), _prompt(), PROVIDER, deps, None)

        deps.notifications.send_document_centric_notification.assert_not_called()

    def test_header_context_output_is_not_document_centric(self, db, execute_job):
        job = execute_job(output_type="header_context", document_key="header_context")
        deps = _deps()

        execute_model_call_and_save(db, job, _prompt(), PROVIDER, deps, "user-1")

        deps.notifications.send_document_centric_notification.assert_not_called()
        siblings = GenerationJobRepository.list_children(db, job.parent_job_id)
        assert all(s.job_type != JobType.RENDER for s in siblings)

    def test_truncated_response_schedules_continuation(self, db, execute_job):
        job = execute_job(continueUntilComplete=True)
        deps = _deps(finish_reason="length")

        results = execute_model_call_and_save(db, job, _prompt(), PROVIDER, deps, "user-1")

        assert results["will_continue"] is True
        siblings = GenerationJobRepository.list_children(db, job.parent_job_id)
        continuation = [s for s in siblings if s.job_type == JobType.EXECUTE and s.id != job.id]
        assert len(continuation) == 1
        assert continuation[0].payload["continuation_count"] == 1
        assert continuation[0].payload["target_contribution_id"] == results["contribution_id"]
        assert continuation[0].payload["user_jwt"] == "jwt-token"

    def test_continuation_chunk_points_at_root(self, db, execute_job, project_session):
        root = DialecticContribution(
            id="root", session_id="session-1", stage="thesis", iteration_number=1,
            document_key="business_case", document_relationships={"thesis": "root"},
        )
        db.add(root)
        db.commit()
        job = execute_job(continueUntilComplete=True, continuation_count=1, target_contribution_id="root")
        deps = _deps()

        results = execute_model_call_and_save(db, job, _prompt(), PROVIDER, deps, "user-1")

        chunk = db.get(DialecticContribution, results["contribution_id"])
        assert chunk.document_relationships["thesis"] == "root"
        assert chunk.continuation_count == 1
        assert chunk.target_contribution_id == "root"
        assert chunk.storage_path.endswith("/thesis/_work")
        assert chunk.file_name == "claude_0_business_case_continuation_1.md"

        render = [s for s in GenerationJobRepository.list_children(db, job.parent_job_id)
                  if s.job_type == JobType.RENDER][0]
        assert render.payload["documentIdentity"] == "root"
        assert render.payload["sourceContributionId"] == chunk.id

    def test_continuation_limit_stops_chaining(self, db, execute_job):
        job = execute_job(continueUntilComplete=True, continuation_count=5)
        deps = _deps(finish_reason="length")

        results = execute_model_call_and_save(db, job, _prompt(), PROVIDER, deps, "user-1")

        assert results["will_continue"] is False

    def test_truncation_without_continue_flag_does_not_chain(self, db, execute_job):
        deps = _deps(finish_reason="length")

        results = execute_model_call_and_save(db, execute_job(), _prompt(), PROVIDER, deps, "user-1")

        assert results["will_continue"] is False

    def test_model_sees_original_document_order(self, db, execute_job):
        deps = _deps()
        docs = [_doc("a", "alpha"), _doc("b", "beta"), _doc("c", "gamma")]

        execute_model_call_and_save(db, execute_job(), _prompt(docs), PROVIDER, deps, "user-1")

        request = deps.model_client.call_unified_ai_model.call_args.args[0]
        assert [d.id for d in request.resource_documents] == ["a", "b", "c"]
        assert [d.content for d in request.resource_documents] == ["alpha", "beta", "gamma"]
        assert request.max_tokens == 50

    def test_failed_insert_removes_uploaded_object(self, db, execute_job, monkeypatch):
        deps = _deps()

        def broken_create(session, **fields):
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        monkeypatch.setattr(model_call_service.ContributionRepository, "create", broken_create)

        with pytest.raises(OperationalError):
            execute_model_call_and_save(db, execute_job(), _prompt(), PROVIDER, deps, "user-1")

        uploaded_key = deps.upload.call_args.args[0]
        deps.delete.assert_called_once_with([uploaded_key], bucket=deps.upload.call_args.kwargs["bucket"])
