# src/async_query/domains/prompts.py

"""Named instruction overrides for a workflow stage. At most one is active per stage."""

import uuid
from enum import Enum
from logging import LoggerAdapter
from typing import Mapping, Optional

from pydantic import BaseModel

from async_query.base.exceptions import (KeyAlreadyExistsException,
                                         ObjectNotFoundException)
from async_query.base.interfaces import Filters, Repository
from async_query.base.projection import ProjectionMap
from async_query.base.query import Builder, SortField
from async_query.base.repository import query_one, with_tx


class PromptNotFoundException(ObjectNotFoundException):
    def __init__(self, message: str = "prompt not found"):
        super().__init__(message)


class PromptAlreadyExistsException(KeyAlreadyExistsException):
    def __init__(self, message: str = "prompt already exists"):
        super().__init__(message)


class Stage(str, Enum):
    CLASSIFY = "classify"
    ENHANCE = "enhance"


class Prompt(BaseModel):
    id: uuid.UUID
    name: str
    stage: Stage
    instructions: str
    description: Optional[str] = None
    active: bool = False


class PromptCommand(BaseModel):
    """Payload for creating or replacing a prompt."""

    name: str
    stage: Stage
    instructions: str
    description: Optional[str] = None


PROJECTION = (
    ProjectionMap("public", "prompts", "p")
    .project("id", "id")
    .project("name", "name")
    .project("stage", "stage")
    .project("instructions", "instructions")
    .project("description", "description")
    .project("active", "active")
)

_RETURNING = "id, name, stage, instructions, description, active"


class PromptFilters(Filters):
    """
    stage and active match exactly, name matches a case-insensitive
    substring. When `match_description` is set, description is compared
    with NULL-aware equality, so a None description selects prompts
    without one.
    """

    stage: Optional[Stage] = None
    name: Optional[str] = None
    active: Optional[bool] = None
    description: Optional[str] = None
    match_description: bool = False

    def apply(self, builder: Builder) -> Builder:
        builder.where_equals("stage", self.stage.value if self.stage else None)
        builder.where_contains("name", self.name)
        builder.where_equals("active", self.active)
        if self.match_description:
            builder.where_nullable("description", self.description)
        return builder

    @classmethod
    def from_query(cls, values: Mapping[str, str]) -> "PromptFilters":
        filters = cls(name=values.get("name") or None)

        stage = values.get("stage")
        if stage in {s.value for s in Stage}:
            filters.stage = Stage(stage)

        active = (values.get("active") or "").lower()
        if active in ("1", "t", "true"):
            filters.active = True
        elif active in ("0", "f", "false"):
            filters.active = False

        return filters


class PromptRepository(Repository[Prompt]):
    entity_type = Prompt
    projection = PROJECTION
    default_sort = (SortField("name"),)
    search_fields = ("name", "description")
    not_found_exception = PromptNotFoundException
    duplicate_exception = PromptAlreadyExistsException

    async def _returning_one(self, logger: LoggerAdapter, sql: str, args, context: str) -> Prompt:
        try:
            return await with_tx(
                self._pool,
                lambda conn: query_one(conn, sql, args, self.scan, timeout=self._timeout),
            )
        except Exception as e:
            self._raise_mapped(e, logger, context)

    async def create(self, logger: LoggerAdapter, command: PromptCommand) -> Prompt:
        sql = (
            "INSERT INTO public.prompts(name, stage, instructions, description) "
            f"VALUES ($1, $2, $3, $4) RETURNING {_RETURNING}"
        )
        args = [command.name, command.stage.value, command.instructions, command.description]
        prompt = await self._returning_one(logger, sql, args, f"creating {command.name}")
        logger.info(f"Prompt created: id={prompt.id}, name={prompt.name}, stage={prompt.stage.value}")
        return prompt

    async def update(
        self, logger: LoggerAdapter, id: uuid.UUID, command: PromptCommand
    ) -> Prompt:
        sql = (
            "UPDATE public.prompts SET name = $1, stage = $2, instructions = $3, "
            f"description = $4 WHERE id = $5 RETURNING {_RETURNING}"
        )
        args = [command.name, command.stage.value, command.instructions, command.description, id]
        prompt = await self._returning_one(logger, sql, args, f"updating {id}")
        logger.info(f"Prompt updated: id={prompt.id}, name={prompt.name}")
        return prompt

    async def activate(self, logger: LoggerAdapter, id: uuid.UUID) -> Prompt:
        """Makes `id` the active prompt of its stage, deactivating the previous one."""
        find_sql, find_args = Builder(self.projection).build_single(self.id_field, id)
        activate_sql = f"UPDATE public.prompts SET active = true WHERE id = $1 RETURNING {_RETURNING}"

        async def _activate(conn) -> Prompt:
            target = await query_one(conn, find_sql, find_args, self.scan, timeout=self._timeout)
            await conn.execute(
                "UPDATE public.prompts SET active = false WHERE stage = $1 AND active = true",
                target.stage.value,
                timeout=self._timeout,
            )
            return await query_one(conn, activate_sql, [id], self.scan, timeout=self._timeout)

        try:
            prompt = await with_tx(self._pool, _activate)
        except Exception as e:
            self._raise_mapped(e, logger, f"activating {id}")

        logger.info(f"Prompt activated: id={prompt.id}, stage={prompt.stage.value}")
        return prompt

    async def deactivate(self, logger: LoggerAdapter, id: uuid.UUID) -> Prompt:
        sql = f"UPDATE public.prompts SET active = false WHERE id = $1 RETURNING {_RETURNING}"
        prompt = await self._returning_one(logger, sql, [id], f"deactivating {id}")
        logger.info(f"Prompt deactivated: id={prompt.id}, stage={prompt.stage.value}")
        return prompt
