"""Versioned project mutations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from workload_ledger.core.config import get_settings
from workload_ledger.core.errors import ConcurrentModification, NotFound
from workload_ledger.models.entities import Project
from workload_ledger.repositories.workload_repository import WorkloadRepository

logger = logging.getLogger(__name__)

ProjectMutation = Callable[[Project], None]


class MutationLedger:
    """Applies one logical change to a project aggregate as one version bump.

    ``mutate_fn`` receives the freshly loaded project and may change its fields
    and its child rows through the repository. The ledger then sets
    ``version = loaded + 1`` and ``updated_at = now`` and commits everything
    in a single transaction. The UPDATE is guarded by the loaded version, so a
    writer that lost a race gets a ``StaleDataError``; the ledger rolls back,
    reloads and re-applies ``mutate_fn``. Once ``max_attempts`` is exhausted
    ``ConcurrentModification`` is raised, which the caller may retry.

    Any other exception from ``mutate_fn`` rolls the transaction back and
    propagates unchanged; no version is consumed.
    """

    def __init__(
        self,
        db: Session,
        repo: WorkloadRepository | None = None,
        *,
        max_attempts: int | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.db = db
        self.repo = repo or WorkloadRepository(db)
        self.max_attempts = max_attempts or get_settings().mutation_max_attempts
        self.clock = clock

    def apply_project_mutation(self, project_id: UUID, mutate_fn: ProjectMutation) -> Project:
        expected_version = 0
        for attempt in range(1, self.max_attempts + 1):
            project = self.repo.get_project(project_id)
            if project is None:
                raise NotFound("Project")

            expected_version = project.version
            try:
                mutate_fn(project)
                project.version = expected_version + 1
                project.updated_at = self.clock()
                self.db.commit()
            except StaleDataError:
                self.db.rollback()
                logger.info(
                    "Version conflict on project %s at version %d (attempt %d/%d)",
                    project_id,
                    expected_version,
                    attempt,
                    self.max_attempts,
                    extra={"project_id": project_id, "version": expected_version, "attempt": attempt},
                )
                continue
            except Exception:
                self.db.rollback()
                raise

            self.db.refresh(project)
            logger.debug(
                "Project %s committed at version %d",
                project_id,
                project.version,
                extra={"project_id": project_id, "version": project.version},
            )
            return project

        logger.warning(
            "Giving up on project %s after %d conflicting attempts",
            project_id,
            self.max_attempts,
            extra={"project_id": project_id},
        )
        raise ConcurrentModification(project_id=project_id, expected_version=expected_version)
