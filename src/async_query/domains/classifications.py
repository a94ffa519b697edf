# src/async_query/domains/classifications.py

"""
Classification results stored per document.

Rows are produced by the classification workflow, which lives outside this
package. This repository reads them and records human review: validating
or overriding a classification also moves its document from `review` to
`complete` in the same transaction.
"""

import json
import uuid
from datetime import datetime
from logging import LoggerAdapter
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, field_validator

from async_query.base.exceptions import (KeyAlreadyExistsException,
                                         NoRowsException,
                                         ObjectNotFoundException)
from async_query.base.interfaces import Filters, Repository
from async_query.base.projection import ProjectionMap
from async_query.base.query import Builder, SortField
from async_query.base.repository import exec_expect_one, query_one, with_tx


class ClassificationNotFoundException(ObjectNotFoundException):
    def __init__(self, message: str = "classification not found"):
        super().__init__(message)


class ClassificationAlreadyExistsException(KeyAlreadyExistsException):
    def __init__(self, message: str = "classification already exists"):
        super().__init__(message)


class InvalidDocumentStatusException(Exception):
    """The classified document is not awaiting review."""

    def __init__(self, message: str = "document is not in review status"):
        super().__init__(message)


class Classification(BaseModel):
    id: uuid.UUID
    document_id: uuid.UUID
    classification: str
    confidence: str
    markings_found: List[str] = []
    rationale: str
    classified_at: datetime
    model_name: str
    provider_name: str
    validated_by: Optional[str] = None
    validated_at: Optional[datetime] = None

    @field_validator("markings_found", mode="before")
    @classmethod
    def _decode_markings(cls, value: Any) -> Any:
        # asyncpg returns jsonb as text unless a codec is registered.
        if value is None:
            return []
        if isinstance(value, (str, bytes)):
            return json.loads(value) or []
        return value


class ValidateCommand(BaseModel):
    validated_by: str


class UpdateClassificationCommand(BaseModel):
    """A manual override; `updated_by` is stored as the validator."""

    classification: str
    rationale: str
    updated_by: str


PROJECTION = (
    ProjectionMap("public", "classifications", "c")
    .project("id", "id")
    .project("document_id", "document_id")
    .project("classification", "classification")
    .project("confidence", "confidence")
    .project("markings_found", "markings_found")
    .project("rationale", "rationale")
    .project("classified_at", "classified_at")
    .project("model_name", "model_name")
    .project("provider_name", "provider_name")
    .project("validated_by", "validated_by")
    .project("validated_at", "validated_at")
)

_RETURNING = (
    "id, document_id, classification, confidence, markings_found, rationale, "
    "classified_at, model_name, provider_name, validated_by, validated_at"
)

_COMPLETE_DOCUMENT = (
    "UPDATE public.documents SET status = 'complete', updated_at = NOW() "
    "WHERE id = $1 AND status = 'review'"
)


class ClassificationFilters(Filters):
    """All fields match exactly."""

    classification: Optional[str] = None
    confidence: Optional[str] = None
    document_id: Optional[uuid.UUID] = None
    validated_by: Optional[str] = None

    def apply(self, builder: Builder) -> Builder:
        return (
            builder.where_equals("classification", self.classification)
            .where_equals("confidence", self.confidence)
            .where_equals("document_id", self.document_id)
            .where_equals("validated_by", self.validated_by)
        )

    @classmethod
    def from_query(cls, values: Mapping[str, str]) -> "ClassificationFilters":
        filters = cls(
            classification=values.get("classification") or None,
            confidence=values.get("confidence") or None,
            validated_by=values.get("validated_by") or None,
        )
        document_id = values.get("document_id")
        if document_id:
            try:
                filters.document_id = uuid.UUID(document_id)
            except ValueError:
                pass
        return filters


class ClassificationRepository(Repository[Classification]):
    entity_type = Classification
    projection = PROJECTION
    default_sort = (SortField("classified_at", descending=True),)
    search_fields = ("classification", "rationale")
    not_found_exception = ClassificationNotFoundException
    duplicate_exception = ClassificationAlreadyExistsException

    async def find_by_document(
        self, logger: LoggerAdapter, document_id: uuid.UUID
    ) -> Classification:
        sql, args = Builder(self.projection).build_single("document_id", document_id)
        try:
            async with self._pool.acquire() as conn:
                return await query_one(conn, sql, args, self.scan, timeout=self._timeout)
        except Exception as e:
            self._raise_mapped(e, logger, f"finding classification of document {document_id}")

    async def validate(
        self, logger: LoggerAdapter, id: uuid.UUID, command: ValidateCommand
    ) -> Classification:
        """Confirms the classification and completes its document."""
        sql = (
            "UPDATE public.classifications SET validated_by = $1, validated_at = NOW() "
            f"WHERE id = $2 RETURNING {_RETURNING}"
        )
        classification = await self._review(
            logger, sql, [command.validated_by, id], f"validating {id}"
        )
        logger.info(
            f"Classification validated: id={classification.id}, "
            f"validated_by={classification.validated_by}"
        )
        return classification

    async def update(
        self, logger: LoggerAdapter, id: uuid.UUID, command: UpdateClassificationCommand
    ) -> Classification:
        """Overrides the classification and rationale and completes its document."""
        sql = (
            "UPDATE public.classifications SET classification = $1, rationale = $2, "
            f"validated_by = $3, validated_at = NOW() WHERE id = $4 RETURNING {_RETURNING}"
        )
        args = [command.classification, command.rationale, command.updated_by, id]
        classification = await self._review(logger, sql, args, f"updating {id}")
        logger.info(
            f"Classification updated: id={classification.id}, updated_by={command.updated_by}"
        )
        return classification

    async def _review(
        self, logger: LoggerAdapter, sql: str, args: List[Any], context: str
    ) -> Classification:
        async def _apply(conn) -> Classification:
            classification = await query_one(conn, sql, args, self.scan, timeout=self._timeout)
            try:
                await exec_expect_one(
                    conn, _COMPLETE_DOCUMENT, classification.document_id, timeout=self._timeout
                )
            except NoRowsException as e:
                raise InvalidDocumentStatusException() from e
            return classification

        try:
            return await with_tx(self._pool, _apply)
        except InvalidDocumentStatusException:
            logger.warning(f"Classification {context} rejected: document is not in review")
            raise
        except Exception as e:
            self._raise_mapped(e, logger, context)
