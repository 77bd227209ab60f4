"""Gardener: drives one seed through research to a completed or failed state."""

from __future__ import annotations

import logging

from tane.garden.extraction import extract_report_text
from tane.garden.failure_classifier import classify_grow_failure
from tane.garden.model_selection import ModelSelection, select_model
from tane.garden.models import GrowOutcome, SeedStatus, SeedView
from tane.garden.prompts import build_research_prompt
from tane.garden.repository import GardenRepository
from tane.provider.base import (
    TOOL_EXECUTION_START,
    ResearchProvider,
    SessionEvent,
    ToolDefinition,
)

logger = logging.getLogger(__name__)

RESEARCH_COMPLETE_LOG = "Research complete"


class Gardener:
    """Grows seeds into reports.

    Stateless apart from its collaborators: the repository, the research
    provider (owned by the caller and refreshed before each attempt) and the
    tools offered to the agent.
    """

    def __init__(
        self,
        *,
        repository: GardenRepository,
        provider: ResearchProvider,
        tools: list[ToolDefinition],
        default_model: str | None = None,
        fallback_model_ids: tuple[str, ...] = (),
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.tools = tools
        self.default_model = default_model
        self.fallback_model_ids = fallback_model_ids

    def grow(self, seed_id: str) -> GrowOutcome | None:
        """Claim a pending seed and research it.

        Returns ``None`` without touching the database when the seed does not
        exist or is not pending.
        """

        logger.info("Gardener: picking up seed %s", seed_id)
        seed = self.repository.get_seed(seed_id)
        if seed is None:
            logger.info("Gardener: seed %s does not exist, skipping", seed_id)
            return None

        claimed = self.repository.claim_seed(seed_id)
        if claimed is None:
            logger.info(
                "Gardener: seed %s is %s, not pending; skipping",
                seed_id,
                seed.status.value,
            )
            return None
        return self.cultivate(claimed)

    def cultivate(self, seed: SeedView) -> GrowOutcome:
        """Research a seed that is already ``processing``; never raises."""

        progress: list[str] = []
        selection: ModelSelection | None = None
        try:
            selection = self._select_model(seed)
            logger.info(
                "Gardener: using model %s (%s) for seed %s [%s]",
                selection.model.id,
                selection.model.provider,
                seed.id,
                selection.reason,
            )

            session = self.provider.create_session(selection.model, self.tools)
            session.subscribe(lambda event: self._on_session_event(seed.id, event, progress))

            self._log(seed.id, f"Starting research on: {seed.content}", progress)
            session.prompt(build_research_prompt(seed.content))

            report_text = extract_report_text(session.messages)
            progress.append(RESEARCH_COMPLETE_LOG)
            self.repository.upsert_report(seed_id=seed.id, content=report_text, logs=progress)
        except Exception as error:  # noqa: BLE001
            return self._wither(seed, error, selection)

        if not self.repository.complete_seed(seed.id):
            current = self.repository.get_seed(seed.id)
            status = current.status if current is not None else SeedStatus.FAILED
            logger.warning(
                "Gardener: seed %s left processing before it could be completed (now %s)",
                seed.id,
                status.value,
            )
            return GrowOutcome(seed_id=seed.id, status=status, model_id=selection.model.id)

        logger.info("Gardener: seed %s has grown into a tree", seed.id)
        return GrowOutcome(
            seed_id=seed.id,
            status=SeedStatus.COMPLETED,
            model_id=selection.model.id,
        )

    def _select_model(self, seed: SeedView) -> ModelSelection:
        self.provider.refresh()
        available = self.provider.list_available_models()
        logger.info("Gardener: available models: %s", [model.id for model in available])
        return select_model(
            requested=seed.model,
            available=available,
            default_model=self.default_model,
            fallback_ids=self.fallback_model_ids,
            lookup=self.provider.find_model,
        )

    def _wither(
        self,
        seed: SeedView,
        error: Exception,
        selection: ModelSelection | None,
    ) -> GrowOutcome:
        classification = classify_grow_failure(error)
        logger.error(
            "Gardener: seed %s withered (%s): %s",
            seed.id,
            classification.failure_class.value,
            error,
            exc_info=error,
            extra=classification.to_log_details(),
        )
        summary = f"{type(error).__name__}: {error}"
        if not self.repository.fail_seed(
            seed.id,
            failure_class=classification.failure_class,
            error_summary=summary,
        ):
            logger.warning("Gardener: seed %s left processing before it could be failed", seed.id)
        return GrowOutcome(
            seed_id=seed.id,
            status=SeedStatus.FAILED,
            model_id=selection.model.id if selection is not None else None,
            failure_class=classification.failure_class,
            error_summary=summary,
        )

    def _on_session_event(self, seed_id: str, event: SessionEvent, progress: list[str]) -> None:
        if event.type == TOOL_EXECUTION_START:
            self._log(seed_id, f"Using tool: {event.tool_name}", progress)

    def _log(self, seed_id: str, message: str, progress: list[str]) -> None:
        progress.append(message)
        logger.info("[Seed %s] %s", seed_id, message)
