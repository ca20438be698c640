import logging
import os
import subprocess
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from errors import PipelineError, StageFailedError, TimelogError

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%a %b %d %H:%M:%S %Y"


class FailurePolicy(Enum):
    ABORT = "abort"
    TOLERATE = "tolerate"


@dataclass(frozen=True)
class StageRecord:
    stage_name: str
    start_time: datetime
    end_time: datetime
    exit_status: int
    tolerated: bool = False


class Timelog:
    """Append-only, human-readable log bracketing every stage of a run."""

    def __init__(self, filename: str):
        self.filename = filename

    def write(self, message: str) -> None:
        # the timelog is the audit trail of the run, so write failures are fatal
        try:
            with open(self.filename, "a") as f:
                f.write(f"{message}\n")
        except OSError as e:
            raise TimelogError(f"Cannot write to timelog {self.filename}: {e}")

    def stamp(self, message: str, when: datetime) -> None:
        self.write(f"{message}    {when.strftime(TIMESTAMP_FORMAT)}")

    def read(self) -> List[str]:
        if not os.path.exists(self.filename):
            return []
        with open(self.filename, "r") as f:
            return f.read().splitlines()


def run(command: List[str], stdout: Optional[str] = None, cwd: Optional[str] = None) -> int:
    # run an external tool to completion and return its exit status
    logger.info(f"Running `{' '.join(command)}`...")
    if stdout is None:
        process = subprocess.Popen(command, cwd=cwd)
        return process.wait()
    with open(stdout, "w") as handle:
        process = subprocess.Popen(command, stdout=handle, cwd=cwd)
        return process.wait()


class StageRunner:
    def __init__(
        self,
        timelog: Timelog,
        working_dir: Optional[str] = None,
        executor: Callable[..., int] = run,
    ):
        self.timelog = timelog
        self.working_dir = working_dir
        self.executor = executor
        self.records: List[StageRecord] = []

    def execute(
        self, command: List[str], stdout: Optional[str] = None, cwd: Optional[str] = None
    ) -> int:
        # commands run inside the workspace unless a stage scopes them elsewhere
        return self.executor(command, stdout=stdout, cwd=cwd or self.working_dir)

    def execute_all(self, commands: List[List[str]]) -> int:
        # stop at the first failing command
        for command in commands:
            status = self.execute(command)
            if status != 0:
                return status
        return 0

    def run_stage(
        self,
        name: str,
        invocation: Callable[[], int],
        failure_policy: FailurePolicy = FailurePolicy.ABORT,
    ) -> StageRecord:
        """Run one stage between two timestamped timelog lines.

        A non-zero exit status raises StageFailedError under the abort policy
        and is only recorded under the tolerate policy. Precondition errors
        raised by the invocation are recorded with their exit code and re-raised;
        any other exception is recorded and re-raised as a PipelineError.
        """
        start = datetime.now()
        self.timelog.stamp(f"Began {name} at:", start)
        logger.info(f"Executing pipeline step: {name}")
        try:
            exit_status = invocation()
        except PipelineError as e:
            if e.stage is None:
                e.stage = name
            self._record(name, start, e.exit_code, tolerated=False)
            logger.error(f"Error in pipeline step {name}: {e}")
            raise
        except Exception as e:
            # any other failure still closes the stage's timelog bracket
            error = PipelineError(f"{type(e).__name__}: {e}", stage=name)
            self._record(name, start, error.exit_code, tolerated=False)
            logger.error(f"Unexpected error in pipeline step {name}: {error}")
            raise error from e
        tolerated = exit_status != 0 and failure_policy is FailurePolicy.TOLERATE
        record = self._record(name, start, exit_status, tolerated)
        if exit_status != 0:
            if tolerated:
                logger.warning(
                    f"Pipeline step {name} exited with status {exit_status}; tolerated"
                )
            else:
                logger.error(f"Pipeline step {name} failed with exit status {exit_status}")
                raise StageFailedError(name, exit_status)
        return record

    def _record(self, name: str, start: datetime, exit_status: int, tolerated: bool) -> StageRecord:
        end = datetime.now()
        outcome = f"exit status {exit_status}" + (", tolerated" if tolerated else "")
        self.timelog.stamp(f"Finished {name} ({outcome}) at:", end)
        record = StageRecord(
            stage_name=name,
            start_time=start,
            end_time=end,
            exit_status=exit_status,
            tolerated=tolerated,
        )
        self.records.append(record)
        return record
