from types import SimpleNamespace
from unittest.mock import MagicMock

from dialectic.models.generation_job import GenerationJob, JobStatus, JobType
from dialectic.repositories.generation_job_repository import GenerationJobRepository


def test_create_generation_job_commits():
    fake_db = MagicMock()

    job = GenerationJobRepository.create(
        fake_db,
        session_id="session-1",
        user_id="user-1",
        stage_slug="thesis",
        iteration_number=1,
        job_type=JobType.PLAN,
        payload={"stageSlug": "thesis"},
    )

    fake_db.add.assert_called_once()
    fake_db.commit.assert_called_once()
    fake_db.refresh.assert_called_once_with(job)
    assert job.status == JobStatus.PENDING
    assert job.job_type == JobType.PLAN


def test_update_returns_none_if_missing():
    fake_db = MagicMock()
    fake_db.query.return_value.filter.return_value.first.return_value = None
    assert GenerationJobRepository.update(fake_db, "missing", status=JobStatus.FAILED) is None
    fake_db.commit.assert_not_called()


def test_update_sets_completed_at_on_terminal_status():
    fake_db = MagicMock()
    job = SimpleNamespace(id="job-1", status=JobStatus.PROCESSING, completed_at=None)
    fake_db.query.return_value.filter.return_value.first.return_value = job

    updated = GenerationJobRepository.update(fake_db, "job-1", status=JobStatus.COMPLETED, results={"ok": True})

    assert updated.status == JobStatus.COMPLETED
    assert updated.results == {"ok": True}
    assert updated.completed_at is not None
    fake_db.commit.assert_called_once()


def test_update_non_terminal_leaves_completed_at():
    fake_db = MagicMock()
    job = SimpleNamespace(id="job-1", status=JobStatus.PROCESSING, completed_at=None)
    fake_db.query.return_value.filter.return_value.first.return_value = job

    GenerationJobRepository.update(fake_db, "job-1", status=JobStatus.WAITING_FOR_CHILDREN)

    assert job.completed_at is None


def test_insert_many_and_list_children(db, make_job):
    parent = make_job()
    children = [
        GenerationJob(
            parent_job_id=parent.id,
            session_id="session-1",
            user_id="user-1",
            stage_slug="thesis",
            iteration_number=1,
            job_type=JobType.EXECUTE,
            status=JobStatus.PENDING,
            payload={"n": i},
        )
        for i in range(3)
    ]

    inserted = GenerationJobRepository.insert_many(db, children)

    assert len(inserted) == 3
    listed = GenerationJobRepository.list_children(db, parent.id)
    assert sorted(child.payload["n"] for child in listed) == [0, 1, 2]


def test_claim_next_marks_processing(db, make_job):
    job = make_job(status=JobStatus.PENDING)

    claimed = GenerationJobRepository.claim_next(db)

    assert claimed.id == job.id
    assert claimed.status == JobStatus.PROCESSING
    assert claimed.started_at is not None
    assert GenerationJobRepository.claim_next(db) is None


def test_claim_next_waits_for_prerequisite(db, make_job):
    prerequisite = make_job(status=JobStatus.WAITING_FOR_CHILDREN)
    blocked = make_job(status=JobStatus.PENDING)
    blocked.prerequisite_job_id = prerequisite.id
    db.commit()

    assert GenerationJobRepository.claim_next(db) is None

    GenerationJobRepository.update(db, prerequisite.id, status=JobStatus.COMPLETED)
    claimed = GenerationJobRepository.claim_next(db)
    assert claimed.id == blocked.id


def test_claim_next_picks_up_pending_next_step(db, make_job):
    job = make_job(status=JobStatus.PENDING_NEXT_STEP)
    assert GenerationJobRepository.claim_next(db).id == job.id
