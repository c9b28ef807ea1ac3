"""Background execution of an extraction run.

The runner walks the run through every stage in order. Before each stage it
re-reads the run status from the database: a run cancelled by the API is
already terminal and the runner stops without touching it further. Any
exception raised by a stage fails the run and resets the project to draft.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from .. import crud, models
from ..config import Settings, get_settings
from ..pipeline_state_machine import RunTransitionError, is_terminal
from .agents import STAGE_HANDLERS, StageContext
from .providers import LLMProvider, ProviderError, get_provider

logger = logging.getLogger("tracelayer-core.extraction.runner")


class ExtractionRunner:
    """Executes one queued run with its own database session."""

    def __init__(
        self,
        session_factory: sessionmaker,
        run_id: UUID,
        provider: LLMProvider,
        settings: Optional[Settings] = None,
    ):
        self.session_factory = session_factory
        self.run_id = run_id
        self.provider = provider
        self.settings = settings or get_settings()

    def run(self) -> Optional[models.RunStatus]:
        """
        Execute the run to a terminal status.

        Returns:
            The final run status, or None if the run does not exist
        """
        db = self.session_factory()
        try:
            return self._execute(db)
        finally:
            db.close()

    def _cancelled(self, db: Session, run: models.ExtractionRun) -> bool:
        db.refresh(run)
        return is_terminal(run.status)

    def _execute(self, db: Session) -> Optional[models.RunStatus]:
        run = crud.get_run(db, self.run_id)
        if run is None:
            logger.warning(f"Extraction run {self.run_id} not found")
            return None
        if is_terminal(run.status):
            logger.info(f"Extraction run {run.id} is already {run.status.value}, nothing to do")
            return run.status

        project = crud.get_project(db, run.project_id)
        ctx = StageContext(db=db, run=run, project=project, llm=self.provider, settings=self.settings)

        try:
            ctx.log(models.AgentName.ORCHESTRATOR, models.LogLevel.INFO, "Pipeline started")
            ctx.log(
                models.AgentName.ORCHESTRATOR,
                models.LogLevel.INFO,
                f"Provider: {self.provider.name.upper()} | Project: {project.name}",
            )
            crud.update_project(db, project.id, status=models.ProjectStatus.PROCESSING)

            for stage, handler in STAGE_HANDLERS:
                if self._cancelled(db, run):
                    return self._stop_cancelled(ctx, stage)
                crud.transition_run(db, run, stage)
                if stage == models.RunStatus.GENERATING_DOCUMENTS:
                    crud.update_project(db, project.id, status=models.ProjectStatus.GENERATING)
                logger.info(f"Run {run.id}: {stage.value}")
                handler(ctx)

            if self._cancelled(db, run):
                return self._stop_cancelled(ctx, models.RunStatus.COMPLETED)

            crud.transition_run(db, run, models.RunStatus.COMPLETED, **ctx.counts)
            crud.refresh_counts(db, project.id)
            crud.update_project(db, project.id, status=models.ProjectStatus.ACTIVE, progress=100)
            ctx.log(
                models.AgentName.ORCHESTRATOR,
                models.LogLevel.SUCCESS,
                f"Pipeline complete! {ctx.counts['requirements_found']} requirements, "
                f"{ctx.counts['stakeholders_found']} stakeholders, "
                f"{ctx.counts['decisions_found']} decisions extracted.",
            )
            logger.info(f"Run {run.id} completed: {ctx.counts}")
            return run.status

        except RunTransitionError as e:
            # The API cancelled the run while a stage was executing
            if e.current_status == models.RunStatus.CANCELLED:
                return self._stop_cancelled(ctx, e.requested_status)
            return self._fail(db, ctx, e)
        except Exception as e:
            return self._fail(db, ctx, e)

    def _stop_cancelled(self, ctx: StageContext, stage: models.RunStatus) -> models.RunStatus:
        ctx.log(
            models.AgentName.ORCHESTRATOR,
            models.LogLevel.WARNING,
            f"Pipeline cancelled before {stage.value}",
        )
        logger.info(f"Run {ctx.run.id} cancelled before {stage.value}")
        return ctx.run.status

    def _fail(self, db: Session, ctx: StageContext, error: Exception) -> models.RunStatus:
        logger.error(f"Run {self.run_id} failed: {error}", exc_info=True)
        db.rollback()
        run = ctx.run
        ctx.log(models.AgentName.ORCHESTRATOR, models.LogLevel.ERROR, f"Pipeline failed: {error}")
        try:
            crud.transition_run(db, run, models.RunStatus.FAILED, error=str(error))
        except RunTransitionError:
            # Cancelled concurrently; the cancellation stands
            return run.status
        crud.update_project(db, run.project_id, status=models.ProjectStatus.DRAFT, progress=0)
        return run.status


def execute_run(
    session_factory: sessionmaker,
    run_id: UUID,
    provider_name: models.LLMProviderName,
    api_key: str,
) -> None:
    """Background-task entry point: build the provider and run the pipeline."""
    settings = get_settings()
    try:
        provider = get_provider(provider_name, api_key, settings=settings)
    except ProviderError as e:
        logger.error(f"Cannot start run {run_id}: {e}")
        db = session_factory()
        try:
            run = crud.get_run(db, run_id)
            if run is not None:
                crud.append_log(db, run, models.AgentName.ORCHESTRATOR, models.LogLevel.ERROR, f"Pipeline failed: {e}")
                crud.transition_run(db, run, models.RunStatus.FAILED, error=str(e))
        finally:
            db.close()
        return
    ExtractionRunner(session_factory, run_id, provider, settings=settings).run()


def get_run_executor():
    """
    Dependency function returning the callable that executes a queued run.

    The pipeline router schedules it as a background task with
    (session_factory, run_id, provider_name, api_key).
    """
    return execute_run
