from dialectic.models.contribution import DialecticContribution
from dialectic.repositories.contribution_repository import ContributionRepository


def _contribution(**overrides):
    fields = dict(
        session_id="session-1",
        stage="thesis",
        iteration_number=1,
        document_key="business_case",
        contribution_type="business_case",
        storage_bucket="bucket",
        storage_path="projects/project-1/sessions/session-1/iteration_1/thesis/contributions",
    )
    fields.update(overrides)
    return DialecticContribution(**fields)


def test_create_and_get_by_id(db, project_session):
    created = ContributionRepository.create(
        db,
        session_id="session-1",
        stage="thesis",
        iteration_number=1,
        document_key="business_case",
        file_name="claude_0_business_case.md",
    )

    fetched = ContributionRepository.get_by_id(db, created.id)
    assert fetched.document_key == "business_case"
    assert fetched.continuation_count == 0
    assert fetched.is_latest_edit is True


def test_list_for_stage_filters(db, project_session):
    db.add_all([
        _contribution(id="c1", file_name="a.md"),
        _contribution(id="c2", file_name="b.md", document_key="feature_spec"),
        _contribution(id="c3", file_name="c.md", contribution_type="header_context", document_key="header_context"),
        _contribution(id="c4", file_name="d.md", stage="antithesis"),
        _contribution(id="c5", file_name="e.md", is_latest_edit=False),
    ])
    db.commit()

    ids = {c.id for c in ContributionRepository.list_for_stage(db, session_id="session-1", stage="thesis")}
    assert ids == {"c1", "c2", "c3"}

    headers = ContributionRepository.list_for_stage(
        db, session_id="session-1", stage="thesis", contribution_type="header_context"
    )
    assert [c.id for c in headers] == ["c3"]

    keyed = ContributionRepository.list_for_stage(db, session_id="session-1", document_key="feature_spec")
    assert [c.id for c in keyed] == ["c2"]


def test_list_document_chain_orders_by_continuation(db, project_session):
    root = _contribution(id="root", file_name="root.md", document_relationships={"thesis": "root"})
    db.add_all([
        root,
        _contribution(id="chunk-2", file_name="c2.md", continuation_count=2, document_relationships={"thesis": "root"}),
        _contribution(id="chunk-1", file_name="c1.md", continuation_count=1, document_relationships={"thesis": "root"}),
        _contribution(id="unrelated", file_name="u.md", document_relationships={"thesis": "other"}),
    ])
    db.commit()

    chain = ContributionRepository.list_document_chain(db, root)

    assert [c.id for c in chain] == ["root", "chunk-1", "chunk-2"]


def test_find_by_storage(db, project_session):
    db.add(_contribution(id="c1", file_name="doc.md"))
    db.commit()

    found = ContributionRepository.find_by_storage(db, _contribution().storage_path, "doc.md")
    assert found.id == "c1"
    assert ContributionRepository.find_by_storage(db, "nowhere", "doc.md") is None
