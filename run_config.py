import logging
import os
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

from constants import (
    DEFAULT_FINAL_DIR,
    DEFAULT_MEMORY_GB,
    DEFAULT_TEMP_ROOT,
    DEFAULT_THREADS,
    DEFAULT_WORKING_DIR,
    LABEL_EXPANSION_LIMIT,
)
from errors import ConfigError

logger = logging.getLogger(__name__)


class LibraryType(Enum):
    PAIRED = "paired"
    SINGLE = "single"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "LibraryType":
        # an absent library type means auto-detect after download
        if value is None or value == "":
            return cls.UNKNOWN
        normalized = str(value).strip().lower()
        if normalized not in (cls.PAIRED.value, cls.SINGLE.value):
            raise ConfigError(
                f"Library type must be 'paired' or 'single', got '{value}'"
            )
        return cls(normalized)


@dataclass(frozen=True)
class RunConfig:
    project_id: str
    sample_accessions: Tuple[str, ...]
    run_label: str
    library_type: LibraryType
    memory_budget_gb: int
    thread_count: int
    working_dir: str
    temp_dir: str
    final_dir: str
    home_dir: str
    diamond_db_path: Optional[str] = None
    download_database: bool = True
    conda_env: Optional[str] = None

    def with_library_type(self, library_type: LibraryType) -> "RunConfig":
        """Return a copy with the auto-detected library type filled in.

        Only a single resolution from UNKNOWN to PAIRED or SINGLE is allowed.
        """
        if self.library_type is not LibraryType.UNKNOWN:
            raise ConfigError(
                f"Library type already resolved to {self.library_type.value}"
            )
        if library_type is LibraryType.UNKNOWN:
            raise ConfigError("Cannot resolve library type to unknown")
        return replace(self, library_type=library_type)


def parse_accessions(samples: Union[str, Sequence[str], None]) -> Tuple[str, ...]:
    # accept a comma-delimited string or a sequence of (possibly comma-delimited) strings
    if samples is None:
        raise ConfigError("Missing sample accessions")
    if isinstance(samples, str):
        samples = [samples]
    accessions = []
    for entry in samples:
        for token in str(entry).split(","):
            token = token.strip()
            if not token:
                raise ConfigError(f"Empty sample accession in '{entry}'")
            accessions.append(token)
    if not accessions:
        raise ConfigError("Missing sample accessions")
    duplicates = sorted({acc for acc in accessions if accessions.count(acc) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate sample accessions: {', '.join(duplicates)}")
    return tuple(accessions)


def derive_run_label(sample_accessions: Sequence[str]) -> str:
    # a pair is already fully spelled out by first-last; mid-sized runs list every
    # accession; large runs are abbreviated to first-last to bound filenames
    if not sample_accessions:
        raise ConfigError("Cannot derive a run label without sample accessions")
    if len(sample_accessions) == 1:
        return sample_accessions[0]
    if len(sample_accessions) == 2 or len(sample_accessions) > LABEL_EXPANSION_LIMIT:
        return f"{sample_accessions[0]}-{sample_accessions[-1]}"
    return "_".join(sample_accessions)


def parse_memory(memory: Union[str, int, None]) -> int:
    # discard any non-digit characters, e.g. "30GB" -> 30
    digits = re.sub(r"[^0-9]", "", str(memory)) if memory is not None else ""
    if not digits or int(digits) == 0:
        logger.warning(f"No usable memory limit given, defaulting to {DEFAULT_MEMORY_GB}GB")
        return DEFAULT_MEMORY_GB
    return int(digits)


def detect_threads(threads: Union[str, int, None] = None) -> int:
    # use the requested thread count, otherwise the number of logical cores
    if threads is not None and str(threads).strip() != "":
        try:
            count = int(str(threads).strip())
        except ValueError:
            raise ConfigError(f"Number of threads must be an integer, got '{threads}'")
        if count < 1:
            raise ConfigError(f"Number of threads must be positive, got {count}")
        return count
    count = os.cpu_count()
    if not count:
        logger.warning(
            f"Could not determine the number of processors, defaulting to {DEFAULT_THREADS}"
        )
        return DEFAULT_THREADS
    logger.info(f"Number of processors available: {count}")
    return count


def build_run_config(
    project_id: Optional[str],
    samples: Union[str, Sequence[str], None],
    library_type: Optional[str] = None,
    memory: Union[str, int, None] = None,
    threads: Union[str, int, None] = None,
    working_dir: Optional[str] = None,
    final_dir: Optional[str] = None,
    temp_dir: Optional[str] = None,
    home_dir: Optional[str] = None,
    diamond_db: Optional[str] = None,
    download_database: bool = True,
    conda_env: Optional[str] = None,
) -> RunConfig:
    # the project name and at least one accession are mandatory
    if project_id is None or not str(project_id).strip():
        raise ConfigError("Missing project name")
    if samples is None or (isinstance(samples, str) and not samples.strip()):
        raise ConfigError("Missing sample accessions")
    accessions = parse_accessions(samples)
    run_label = derive_run_label(accessions)
    config = RunConfig(
        project_id=str(project_id).strip(),
        sample_accessions=accessions,
        run_label=run_label,
        library_type=LibraryType.parse(library_type),
        memory_budget_gb=parse_memory(memory),
        thread_count=detect_threads(threads),
        working_dir=os.path.abspath(working_dir or DEFAULT_WORKING_DIR),
        temp_dir=os.path.abspath(os.path.join(temp_dir or DEFAULT_TEMP_ROOT, run_label)),
        final_dir=os.path.abspath(final_dir or DEFAULT_FINAL_DIR),
        home_dir=os.path.abspath(home_dir or os.getcwd()),
        diamond_db_path=os.path.abspath(diamond_db) if diamond_db else None,
        download_database=download_database,
        conda_env=conda_env or None,
    )
    logger.info(f"PROJECT name: {config.project_id}")
    logger.info(f"SRA sample accessions: {' '.join(config.sample_accessions)}")
    logger.info(f"Memory limit: {config.memory_budget_gb}")
    logger.info(f"Number of CPUs: {config.thread_count}")
    return config
