# src/collab_tracker/tasks/refinements.py

from __future__ import annotations

"""
Refinement thread attached to a task.

Owner and shared-with collaborators post notes and questions; only the owner
answers questions (an answer points at its question through parent_id) and
records `update` entries when changing the task from the discussion.
"""

import logging

from ..core.access import require_identity, require_member, require_owner
from ..core.errors import NotFound, ValidationError
from ..core.identity import Identity
from .lifecycle import TaskLifecycle
from .task_models import (
    QuestionThread,
    RefinementGroups,
    RefinementRole,
    RefinementType,
    TaskRefinement,
    TaskUpdate,
)

logger = logging.getLogger(__name__)


def _parse_type(raw: str | RefinementType) -> RefinementType:
    try:
        return RefinementType((raw or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown refinement type: {raw}") from None


def group_refinements(refinements: list[TaskRefinement]) -> RefinementGroups:
    """Split a thread into notes, question/answer pairs and updates, keeping order."""
    groups = RefinementGroups()
    threads: dict[int, QuestionThread] = {}

    for item in refinements:
        if item.type == RefinementType.QUESTION:
            thread = QuestionThread(question=item)
            threads[item.id] = thread
            groups.questions.append(thread)
        elif item.type == RefinementType.NOTE:
            groups.notes.append(item)
        elif item.type == RefinementType.UPDATE:
            groups.updates.append(item)

    for item in refinements:
        if item.type != RefinementType.ANSWER:
            continue
        thread = threads.get(item.parent_id) if item.parent_id is not None else None
        if thread is None:
            logger.debug("Orphan answer id=%s parent=%s", item.id, item.parent_id)
            continue
        thread.answers.append(item)

    return groups


class RefinementThread:
    def __init__(self, lifecycle: TaskLifecycle) -> None:
        self.lifecycle = lifecycle
        self.store = lifecycle.store
        self.clock = lifecycle.clock

    def _post(
        self,
        identity: Identity,
        *,
        task_id: int,
        role: RefinementRole,
        type: RefinementType,
        content: str,
        parent_id: int | None = None,
    ) -> int:
        return self.store.add_refinement(
            task_id=task_id,
            author_id=identity.subject,
            author_email=identity.email or identity.name or "",
            author_name=identity.name,
            role=role,
            type=type,
            content=content,
            now_ms=self.clock.now_ms(),
            parent_id=parent_id,
        )

    def get_task_refinements(self, identity: Identity | None, task_id: int) -> list[TaskRefinement]:
        identity = require_identity(identity)
        task = self.lifecycle.load_task(task_id)
        require_member(self.lifecycle.task_access(task, identity), "Not authorized to view refinements")
        return self.store.list_refinements(task.id)

    def add_task_refinement(
        self,
        identity: Identity | None,
        task_id: int,
        type: str | RefinementType,
        content: str,
    ) -> int:
        identity = require_identity(identity)
        task = self.lifecycle.load_task(task_id)
        access = self.lifecycle.task_access(task, identity)
        require_member(access, "Not authorized to add refinements")

        kind = _parse_type(type)
        if kind == RefinementType.ANSWER:
            raise ValidationError("Answers can only be posted through answer_question")
        text = (content or "").strip()
        if not text:
            raise ValidationError("Refinement content is required")

        role = RefinementRole.OWNER if access.is_owner else RefinementRole.COLLABORATOR
        refinement_id = self._post(identity, task_id=task.id, role=role, type=kind, content=text)
        logger.info("Refinement added id=%s task=%s type=%s role=%s", refinement_id, task.id, kind, role)
        return refinement_id

    def answer_question(self, identity: Identity | None, question_id: int, answer: str) -> int:
        identity = require_identity(identity)
        question = self.store.get_refinement(question_id)
        if question is None:
            raise NotFound("Question not found")
        if question.type != RefinementType.QUESTION:
            raise ValidationError("Can only answer questions")

        task = self.lifecycle.load_task(question.task_id)
        require_owner(self.lifecycle.task_access(task, identity), "Only task owner can answer questions")

        text = (answer or "").strip()
        if not text:
            raise ValidationError("Answer text is required")

        answer_id = self._post(
            identity,
            task_id=task.id,
            role=RefinementRole.OWNER,
            type=RefinementType.ANSWER,
            content=text,
            parent_id=question.id,
        )
        logger.info("Question answered id=%s question=%s", answer_id, question.id)
        return answer_id

    def update_task_from_refinement(
        self,
        identity: Identity | None,
        task_id: int,
        update: TaskUpdate,
        note: str | None = None,
    ) -> int | None:
        """Owner-only task update; a non-empty note is recorded as an `update` entry."""
        identity = require_identity(identity)
        task = self.lifecycle.load_task(task_id)
        require_owner(self.lifecycle.task_access(task, identity), "Only task owner can update the task")

        self.lifecycle.update_task(identity, task.id, update)

        text = (note or "").strip()
        if not text:
            return None
        return self._post(
            identity,
            task_id=task.id,
            role=RefinementRole.OWNER,
            type=RefinementType.UPDATE,
            content=text,
        )
