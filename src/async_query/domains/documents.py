# src/async_query/domains/documents.py

"""
Document metadata repository.

Documents are uploaded files registered with their originating platform.
Blob upload itself happens elsewhere; this repository stores and queries
the metadata row and the storage key pointing at the blob.
"""

import uuid
from datetime import datetime
from enum import Enum
from logging import LoggerAdapter
from pathlib import PurePosixPath
from typing import List, Mapping, Optional
from urllib.parse import quote

from pydantic import BaseModel

from async_query.base.exceptions import (KeyAlreadyExistsException,
                                         ObjectNotFoundException)
from async_query.base.interfaces import Filters, Repository
from async_query.base.projection import ProjectionMap
from async_query.base.query import Builder, SortField
from async_query.base.repository import query_one, with_tx


class DocumentNotFoundException(ObjectNotFoundException):
    def __init__(self, message: str = "document not found"):
        super().__init__(message)


class DocumentAlreadyExistsException(KeyAlreadyExistsException):
    def __init__(self, message: str = "document already exists"):
        super().__init__(message)


class DocumentStatus(str, Enum):
    PENDING = "pending"
    REVIEW = "review"
    COMPLETE = "complete"


class Document(BaseModel):
    id: uuid.UUID
    external_id: int
    external_platform: str
    filename: str
    content_type: str
    size_bytes: int
    page_count: Optional[int] = None
    storage_key: str
    status: DocumentStatus = DocumentStatus.PENDING
    uploaded_at: datetime
    updated_at: datetime


class CreateDocumentCommand(BaseModel):
    filename: str
    content_type: str
    size_bytes: int
    external_id: int
    external_platform: str
    page_count: Optional[int] = None


PROJECTION = (
    ProjectionMap("public", "documents", "d")
    .project("id", "id")
    .project("external_id", "external_id")
    .project("external_platform", "external_platform")
    .project("filename", "filename")
    .project("content_type", "content_type")
    .project("size_bytes", "size_bytes")
    .project("page_count", "page_count")
    .project("storage_key", "storage_key")
    .project("status", "status")
    .project("uploaded_at", "uploaded_at")
    .project("updated_at", "updated_at")
)

_RETURNING = (
    "id, external_id, external_platform, filename, content_type, size_bytes, "
    "page_count, storage_key, status, uploaded_at, updated_at"
)


class DocumentFilters(Filters):
    """
    status, external_id, external_platform and content_type match exactly;
    filename and storage_key match case-insensitive substrings; statuses
    matches any of the listed statuses.
    """

    status: Optional[DocumentStatus] = None
    statuses: Optional[List[DocumentStatus]] = None
    filename: Optional[str] = None
    external_id: Optional[int] = None
    external_platform: Optional[str] = None
    content_type: Optional[str] = None
    storage_key: Optional[str] = None

    def apply(self, builder: Builder) -> Builder:
        return (
            builder.where_equals("status", self.status.value if self.status else None)
            .where_in("status", [s.value for s in self.statuses or []])
            .where_contains("filename", self.filename)
            .where_equals("external_id", self.external_id)
            .where_equals("external_platform", self.external_platform)
            .where_equals("content_type", self.content_type)
            .where_contains("storage_key", self.storage_key)
        )

    @classmethod
    def from_query(cls, values: Mapping[str, str]) -> "DocumentFilters":
        """Reads filters from URL query parameters, skipping unparsable values."""
        filters = cls(
            filename=values.get("filename") or None,
            external_platform=values.get("external_platform") or None,
            content_type=values.get("content_type") or None,
            storage_key=values.get("storage_key") or None,
        )

        status = values.get("status")
        if status in {s.value for s in DocumentStatus}:
            filters.status = DocumentStatus(status)

        statuses = [
            DocumentStatus(s.strip())
            for s in (values.get("statuses") or "").split(",")
            if s.strip() in {st.value for st in DocumentStatus}
        ]
        filters.statuses = statuses or None

        external_id = values.get("external_id")
        if external_id and external_id.lstrip("-").isdigit():
            filters.external_id = int(external_id)

        return filters


def build_storage_key(id: uuid.UUID, filename: str) -> str:
    return f"documents/{id}/{sanitize_filename(filename)}"


def sanitize_filename(name: str) -> str:
    name = PurePosixPath(name.replace("\\", "/")).name
    if name in ("", ".", ".."):
        name = "document"
    return quote(name, safe="")


class DocumentRepository(Repository[Document]):
    entity_type = Document
    projection = PROJECTION
    default_sort = (SortField("uploaded_at", descending=True),)
    search_fields = ("filename", "external_platform")
    not_found_exception = DocumentNotFoundException
    duplicate_exception = DocumentAlreadyExistsException

    async def create(
        self, logger: LoggerAdapter, command: CreateDocumentCommand
    ) -> Document:
        """Registers a document and returns the stored row."""
        id = uuid.uuid4()
        key = build_storage_key(id, command.filename)
        sql = (
            "INSERT INTO public.documents(id, external_id, external_platform, "
            "filename, content_type, size_bytes, page_count, storage_key) "
            f"VALUES ($1, $2, $3, $4, $5, $6, $7, $8) RETURNING {_RETURNING}"
        )
        args = [
            id,
            command.external_id,
            command.external_platform,
            command.filename,
            command.content_type,
            command.size_bytes,
            command.page_count,
            key,
        ]

        try:
            document = await with_tx(
                self._pool,
                lambda conn: query_one(conn, sql, args, self.scan, timeout=self._timeout),
            )
        except Exception as e:
            self._raise_mapped(e, logger, f"creating {command.filename}")

        logger.info(f"Document created: id={document.id}, filename={document.filename}")
        return document

    async def update_status(
        self, logger: LoggerAdapter, id: uuid.UUID, status: DocumentStatus
    ) -> Document:
        sql = (
            "UPDATE public.documents SET status = $1, updated_at = NOW() "
            f"WHERE id = $2 RETURNING {_RETURNING}"
        )
        try:
            document = await with_tx(
                self._pool,
                lambda conn: query_one(
                    conn, sql, [status.value, id], self.scan, timeout=self._timeout
                ),
            )
        except Exception as e:
            self._raise_mapped(e, logger, f"updating status of {id}")

        logger.info(f"Document {id} status set to {status.value}")
        return document
