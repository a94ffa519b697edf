# tests/domains/test_classifications.py

import uuid

import pytest

from async_query.base.pagination import PageRequest
from async_query.base.query import Builder
from async_query.domains.classifications import (
    PROJECTION, Classification, ClassificationFilters,
    ClassificationNotFoundException, ClassificationRepository,
    InvalidDocumentStatusException, UpdateClassificationCommand,
    ValidateCommand)

COLUMNS = (
    "c.id, c.document_id, c.classification, c.confidence, c.markings_found, "
    "c.rationale, c.classified_at, c.model_name, c.provider_name, "
    "c.validated_by, c.validated_at"
)


@pytest.fixture
def repo(pool, pagination) -> ClassificationRepository:
    return ClassificationRepository(pool, pagination, timeout=2)


@pytest.fixture
def classification_row(now):
    def _make(**overrides):
        row = {
            "id": uuid.uuid4(),
            "document_id": uuid.uuid4(),
            "classification": "SECRET",
            "confidence": "HIGH",
            "markings_found": '["SECRET", "NOFORN"]',
            "rationale": "Banner markings on every page.",
            "classified_at": now,
            "model_name": "gpt-5",
            "provider_name": "azure",
            "validated_by": None,
            "validated_at": None,
        }
        row.update(overrides)
        return row

    return _make


# --- Entity ---
@pytest.mark.parametrize(
    "raw, expected",
    [
        ('["A", "B"]', ["A", "B"]),
        (b'["A"]', ["A"]),
        (["C"], ["C"]),
        (None, []),
        ("null", []),
    ],
    ids=["json_text", "json_bytes", "list", "none", "json_null"],
)
def test_markings_found_decoding(classification_row, raw, expected):
    row = classification_row(markings_found=raw)
    assert Classification.model_validate(row).markings_found == expected


# --- Filters ---
def test_filters_apply():
    document_id = uuid.uuid4()
    filters = ClassificationFilters(confidence="HIGH", document_id=document_id)
    sql, args = filters.apply(Builder(PROJECTION)).build_count()
    assert sql == (
        "SELECT COUNT(*) FROM public.classifications c "
        "WHERE c.confidence = $1 AND c.document_id = $2"
    )
    assert args == ["HIGH", document_id]


def test_filters_from_query():
    document_id = uuid.uuid4()
    filters = ClassificationFilters.from_query(
        {"classification": "SECRET", "document_id": str(document_id), "validated_by": ""}
    )
    assert filters.classification == "SECRET"
    assert filters.document_id == document_id
    assert filters.validated_by is None


def test_filters_from_query_skips_bad_uuid():
    assert ClassificationFilters.from_query({"document_id": "not-a-uuid"}).document_id is None


# --- Queries ---
async def test_list_defaults_to_newest_first(repo, conn, classification_row, logger):
    conn.queue("fetchval", 1).queue("fetch", [classification_row()])

    result = await repo.list(logger, PageRequest(search="banner"))

    count_sql, page_sql = conn.queries()
    assert count_sql == (
        "SELECT COUNT(*) FROM public.classifications c "
        "WHERE (c.classification ILIKE $1 OR c.rationale ILIKE $2)"
    )
    assert page_sql.endswith("ORDER BY c.classified_at DESC LIMIT 20 OFFSET 0")
    assert result.data[0].markings_found == ["SECRET", "NOFORN"]


async def test_find_by_document_uses_document_column(repo, conn, classification_row, logger):
    row = classification_row()
    conn.queue("fetchrow", row)

    found = await repo.find_by_document(logger, row["document_id"])

    assert found.id == row["id"]
    assert conn.calls == [
        (
            "fetchrow",
            f"SELECT {COLUMNS} FROM public.classifications c WHERE c.document_id = $1",
            [row["document_id"]],
            2,
        )
    ]


async def test_find_by_document_missing(repo, conn, logger):
    conn.queue("fetchrow", None)
    with pytest.raises(ClassificationNotFoundException):
        await repo.find_by_document(logger, uuid.uuid4())


# --- Review ---
async def test_validate_completes_document(repo, conn, classification_row, logger):
    row = classification_row(validated_by="analyst")
    conn.queue("fetchrow", row).queue("execute", "UPDATE 1")

    result = await repo.validate(logger, row["id"], ValidateCommand(validated_by="analyst"))

    assert result.validated_by == "analyst"
    assert conn.calls[0][2] == ["analyst", row["id"]]
    assert conn.calls[1][1] == (
        "UPDATE public.documents SET status = 'complete', updated_at = NOW() "
        "WHERE id = $1 AND status = 'review'"
    )
    assert conn.calls[1][2] == [row["document_id"]]
    assert conn.events == ["start", "commit"]


async def test_validate_document_not_in_review(repo, conn, classification_row, logger):
    conn.queue("fetchrow", classification_row()).queue("execute", "UPDATE 0")

    with pytest.raises(InvalidDocumentStatusException):
        await repo.validate(logger, uuid.uuid4(), ValidateCommand(validated_by="analyst"))
    assert conn.events == ["start", "rollback"]


async def test_validate_missing(repo, conn, logger):
    conn.queue("fetchrow", None)
    with pytest.raises(ClassificationNotFoundException):
        await repo.validate(logger, uuid.uuid4(), ValidateCommand(validated_by="analyst"))
    assert conn.queries("execute") == []


async def test_update_overrides_classification(repo, conn, classification_row, logger):
    id = uuid.uuid4()
    row = classification_row(id=id, classification="UNCLASSIFIED", validated_by="lead")
    conn.queue("fetchrow", row).queue("execute", "UPDATE 1")

    command = UpdateClassificationCommand(
        classification="UNCLASSIFIED", rationale="Markings were examples.", updated_by="lead"
    )
    result = await repo.update(logger, id, command)

    assert result.classification == "UNCLASSIFIED"
    assert conn.calls[0][2] == ["UNCLASSIFIED", "Markings were examples.", "lead", id]
    assert conn.events == ["start", "commit"]


async def test_delete(repo, conn, logger):
    id = uuid.uuid4()
    conn.queue("execute", "DELETE 1")
    await repo.delete(logger, id)
    assert conn.queries() == ["DELETE FROM public.classifications WHERE id = $1"]
