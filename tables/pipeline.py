"""
Staged datatables pipeline.

The pipeline runs ResolveModelStage -> FinalizeResponseStage ->
EnrichRowsStage. Every stage gets a copy of the context; when a stage fails
the failure is logged and the context from before that stage is handed to
the next one, so a broken stage never leaves a half-written response.
Security violations are not failures of a stage and always propagate.
"""
from typing import List, Optional, Sequence

from constants import DEFAULT_PIPELINE_ORDER
from error_handler import SecurityError
from logging_helper import LoggingHelper, LogType
from settings import DatatablesSettings
from tables.context import DatatablesContext
from tables.query_factory import QueryFactory
from tables.security import TableAccessGuard
from tables.stages import (
    EnrichRowsStage, FinalizeResponseStage, PipelineStage, ResolveModelStage,
)


class DatatablesPipeline:
    """
    Runs the configured stages over one DatatablesContext.

    Args:
        settings: Injected configuration (pipeline_order, salt, allowed tables)
        db: Database used to resolve table keys
        stages: Override the default stage list (tests inject failing stages)
        guard: Table access guard; defaults to the settings whitelist
    """

    def __init__(self, settings: Optional[DatatablesSettings] = None, db=None,
                 stages: Optional[Sequence[PipelineStage]] = None,
                 guard: Optional[TableAccessGuard] = None):
        self.settings = settings or DatatablesSettings()
        self.guard = guard or TableAccessGuard(self.settings.allowed_tables)
        if stages is None:
            stages = [
                ResolveModelStage(QueryFactory(), db, self.guard),
                FinalizeResponseStage(),
                EnrichRowsStage(self.settings.id_salt),
            ]
        self.stages: List[PipelineStage] = list(stages)
        self._check_order()

    def _check_order(self) -> None:
        """Log configured stage names that are unknown; the order itself is not enforced."""
        unknown = [name for name in self.settings.pipeline_order if name not in DEFAULT_PIPELINE_ORDER]
        if unknown:
            LoggingHelper.log_warning("Unknown pipeline stages configured", {'stages': unknown})
        LoggingHelper.log_debug("Pipeline order", {
            'configured': list(self.settings.pipeline_order),
            'running': [stage.name for stage in self.stages],
        })

    def run(self, context: DatatablesContext) -> DatatablesContext:
        for stage in self.stages:
            try:
                result = stage.execute(context.copy())
                if result is None:
                    raise TypeError(f"{stage.name} returned no context")
                context = result
            except SecurityError:
                raise
            except Exception as exc:
                LoggingHelper.log_error_with_trace(
                    f"Pipeline stage {stage.name} failed", exc, LogType.PIPELINE
                )
        return context
