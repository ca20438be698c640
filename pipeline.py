import logging
from enum import Enum
from typing import List, Optional

from constants import EXIT_STAGE_FAILED
from errors import ConfigError
from run_config import LibraryType
from stage_runner import StageRecord
from stages import STAGES, Stage, StageContext

logger = logging.getLogger(__name__)

LIBRARY_TYPE_STEP = "determine_library_type"


class PipelineState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def identify_start_step(stages: List[Stage], start_step: Optional[str]) -> List[Stage]:
    # subset the pipeline stages based on the requested starting step
    if start_step is None:
        return list(stages)
    names = [stage.name for stage in stages]
    if start_step not in names:
        raise ConfigError(
            f"Unknown pipeline step '{start_step}'; choose one of {', '.join(names)}"
        )
    logger.info(f"Starting the pipeline from step {start_step}")
    return stages[names.index(start_step):]


class PipelineDriver:
    """Runs the stages of one run strictly in order.

    The driver moves forward through its stage list or jumps to FAILED; it
    never retries or rolls back, so outputs of completed stages stay on disk
    and a human can re-invoke the run, optionally from a later start step.
    """

    def __init__(
        self,
        context: StageContext,
        stages: Optional[List[Stage]] = None,
        start_step: Optional[str] = None,
    ):
        self.context = context
        self.stages = identify_start_step(STAGES if stages is None else stages, start_step)
        self.state = PipelineState.NOT_STARTED
        self.current_index: Optional[int] = None
        self.failed_stage: Optional[str] = None
        self.exit_status: Optional[int] = None
        # a resumed run still needs its library type before any layout-dependent stage
        if (
            context.library_type is LibraryType.UNKNOWN
            and self.stages
            and LIBRARY_TYPE_STEP not in [stage.name for stage in self.stages]
        ):
            library_stage = [stage for stage in STAGES if stage.name == LIBRARY_TYPE_STEP][0]
            self.stages.insert(0, library_stage)

    @property
    def records(self) -> List[StageRecord]:
        return self.context.runner.records

    def run(self) -> List[StageRecord]:
        self.state = PipelineState.RUNNING
        for index, stage in enumerate(self.stages):
            self.current_index = index
            # an explicit or already detected library type needs no detection
            if stage.name == LIBRARY_TYPE_STEP and self.context.library_type is not LibraryType.UNKNOWN:
                logger.info(
                    f"Skipping {stage.name}: library type is {self.context.library_type.value}"
                )
                continue
            try:
                self.context.runner.run_stage(
                    stage.name, lambda: stage.action(self.context), stage.failure_policy
                )
            except Exception as e:
                self.state = PipelineState.FAILED
                self.failed_stage = getattr(e, "stage", None) or stage.name
                self.exit_status = getattr(e, "exit_status", getattr(e, "exit_code", EXIT_STAGE_FAILED))
                logger.error(
                    f"Pipeline stopped at step {self.failed_stage} "
                    f"({index + 1}/{len(self.stages)}): {e}"
                )
                raise
        self.state = PipelineState.COMPLETED
        self.current_index = None
        logger.info("Pipeline completed successfully!")
        return self.records
