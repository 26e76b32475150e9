from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from dialectic.errors import DocumentIdentityError
from dialectic.models.generation_job import JobStatus
from dialectic.services.job_dependencies import JobDependencies
from dialectic.services.render_job_processor import process_render_job, validate_render_payload

VALID_PAYLOAD = {
    "projectId": "project-1",
    "sessionId": "session-1",
    "stageSlug": "thesis",
    "iterationNumber": 1,
    "documentIdentity": "root-1",
    "documentKey": "business_case",
    "sourceContributionId": "root-1",
    "model_id": "model-1",
    "user_jwt": "jwt-token",
    "planner_metadata": {"recipe_step_id": "step-1", "recipe_step_key": "draft_business_case"},
}


def _job(**overrides):
    payload = {**VALID_PAYLOAD, **overrides}
    payload = {k: v for k, v in payload.items() if v is not None}
    return SimpleNamespace(id="render-1", session_id="session-1", stage_slug="thesis", iteration_number=1,
                           payload=payload)


def _deps(render_result=None):
    renderer = MagicMock()
    renderer.render_document.return_value = render_result or {
        "pathContext": {"sourceContributionId": "root-1", "documentKey": "business_case"},
        "renderedBytes": b"# doc",
        "latestRenderedResourceId": "resource-1",
    }
    return JobDependencies(notifications=MagicMock(), jobs_repo=MagicMock(), renderer=renderer)


def _events(deps):
    return [call.args[0]["type"] for call in deps.notifications.send_document_centric_notification.call_args_list]


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"projectId": None}, "Missing required render parameters: projectId"),
        ({"sessionId": None}, "Missing required render parameters: sessionId"),
        ({"stageSlug": ""}, "Missing required render parameters: stageSlug"),
        ({"documentIdentity": None}, "Missing required render parameters: documentIdentity"),
        ({"iterationNumber": None}, "iterationNumber is required and must be a number"),
        ({"iterationNumber": "first"}, "iterationNumber is required and must be a number"),
        ({"documentKey": "not_a_document"}, "documentKey must be a valid FileType"),
    ],
)
def test_invalid_payload_fails_without_rendering(overrides, message):
    deps = _deps()

    process_render_job(MagicMock(), _job(**overrides), "owner-1", deps)

    deps.renderer.render_document.assert_not_called()
    deps.jobs_repo.update.assert_called_once()
    kwargs = deps.jobs_repo.update.call_args.kwargs
    assert kwargs["status"] == JobStatus.FAILED
    assert kwargs["error_details"]["message"] == message
    assert _events(deps) == ["job_failed"]


def test_first_invalid_field_wins():
    deps = _deps()

    process_render_job(MagicMock(), _job(sessionId=None, documentKey="nope"), "owner-1", deps)

    assert deps.jobs_repo.update.call_args.kwargs["error_details"]["message"] == (
        "Missing required render parameters: sessionId"
    )


def test_numeric_string_iteration_is_accepted():
    params = validate_render_payload({**VALID_PAYLOAD, "iterationNumber": "2"})
    assert params["iterationNumber"] == 2


def test_successful_render_updates_once():
    deps = _deps()

    process_render_job(MagicMock(), _job(), "owner-1", deps)

    params = deps.renderer.render_document.call_args.args[1]
    assert params == {
        "projectId": "project-1",
        "sessionId": "session-1",
        "iterationNumber": 1,
        "stageSlug": "thesis",
        "documentIdentity": "root-1",
        "documentKey": "business_case",
        "sourceContributionId": "root-1",
        "template_filename": None,
    }
    deps.jobs_repo.update.assert_called_once()
    kwargs = deps.jobs_repo.update.call_args.kwargs
    assert kwargs["status"] == JobStatus.COMPLETED
    assert kwargs["results"]["pathContext"]["sourceContributionId"] == "root-1"
    assert _events(deps) == ["render_started", "render_completed"]
    completed = deps.notifications.send_document_centric_notification.call_args.args[0]
    assert completed["latestRenderedResourceId"] == "resource-1"


def test_continuation_chunk_uses_renderer_source_contribution():
    deps = _deps(render_result={
        "pathContext": {"sourceContributionId": "chunk-from-renderer"},
        "renderedBytes": b"",
    })

    process_render_job(MagicMock(), _job(sourceContributionId="chunk-2"), "owner-1", deps)

    assert deps.renderer.render_document.call_args.args[1]["sourceContributionId"] == "chunk-2"
    kwargs = deps.jobs_repo.update.call_args.kwargs
    assert kwargs["status"] == JobStatus.COMPLETED
    assert kwargs["results"]["pathContext"]["sourceContributionId"] == "chunk-from-renderer"


@pytest.mark.parametrize("error", [RuntimeError("disk full"), DocumentIdentityError("root missing")])
def test_renderer_exception_fails_once(error):
    deps = _deps()
    deps.renderer.render_document.side_effect = error

    process_render_job(MagicMock(), _job(), "owner-1", deps)

    deps.jobs_repo.update.assert_called_once()
    kwargs = deps.jobs_repo.update.call_args.kwargs
    assert kwargs["status"] == JobStatus.FAILED
    assert kwargs["error_details"]["message"] == str(error)
    assert _events(deps) == ["render_started", "job_failed"]
    failed = deps.notifications.send_document_centric_notification.call_args.args[0]
    assert set(failed["error"]) == {"code", "message"}


def test_no_owner_means_no_events():
    deps = _deps()

    process_render_job(MagicMock(), _job(), None, deps)

    deps.notifications.send_document_centric_notification.assert_not_called()
    assert deps.jobs_repo.update.call_args.kwargs["status"] == JobStatus.COMPLETED
