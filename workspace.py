import filecmp
import logging
import os
import shutil
from dataclasses import dataclass
from typing import List, Tuple

from constants import (
    CONTIGS_DIRECTORY,
    DATA_CONTIGS_DIRECTORY,
    DIAMOND_DIRECTORY,
    HELPER_SCRIPTS,
    HELPER_SOURCE_URL,
    MAPPING_DIRECTORY,
    MAPPING_PROCESSING_DIRECTORY,
    RAW_PAIRED_SUFFIXES,
    RAW_READS_DIRECTORY,
    RAW_SINGLE_SUFFIX,
    RUN_DIRECTORIES,
    SCRIPTS_DIRECTORY,
    TAXONOMY_DIRECTORY,
    TIMELOGS_DIRECTORY,
    TRIMMED_PAIRED_SUFFIXES,
    TRIMMED_READS_DIRECTORY,
    TRIMMED_SINGLE_SUFFIX,
    VIRUSES_DIRECTORY,
)
from errors import MissingDependencyError, UnresolvedLayoutError, WorkspaceError
from run_config import LibraryType, RunConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkspaceLayout:
    """Paths of one run's workspace, all namespaced by the run label."""

    root: str
    run_label: str

    def path(self, relative: str) -> str:
        return os.path.join(self.root, relative)

    @property
    def raw_reads_dir(self) -> str:
        return self.path(RAW_READS_DIRECTORY)

    @property
    def trimmed_reads_dir(self) -> str:
        return self.path(TRIMMED_READS_DIRECTORY)

    @property
    def data_contigs_dir(self) -> str:
        return self.path(DATA_CONTIGS_DIRECTORY)

    @property
    def scripts_dir(self) -> str:
        return self.path(SCRIPTS_DIRECTORY)

    @property
    def timelog(self) -> str:
        return os.path.join(self.path(TIMELOGS_DIRECTORY), f"{self.run_label}.log")

    @property
    def descriptor(self) -> str:
        return os.path.join(self.scripts_dir, f"{self.run_label}.input.yaml")

    @property
    def contigs(self) -> str:
        return os.path.join(self.path(CONTIGS_DIRECTORY), f"{self.run_label}.contigs.fasta")

    @property
    def diamond_results(self) -> str:
        return os.path.join(self.path(DIAMOND_DIRECTORY), f"{self.run_label}.nr.diamond.txt")

    @property
    def taxonomy_results(self) -> str:
        return os.path.join(
            self.path(TAXONOMY_DIRECTORY), f"{self.run_label}.nr.diamond.taxonomy.txt"
        )

    @property
    def viral_fasta(self) -> str:
        return os.path.join(self.path(VIRUSES_DIRECTORY), f"{self.run_label}.viruses.fasta")

    @property
    def viral_taxonomy(self) -> str:
        return os.path.join(
            self.path(VIRUSES_DIRECTORY), f"{self.run_label}.viruses.taxonomy.txt"
        )

    @property
    def mapped_table(self) -> str:
        return os.path.join(
            self.path(MAPPING_DIRECTORY),
            f"{self.run_label}.nr.diamond.taxonomy.mapped.txt",
        )

    @property
    def bwa_index(self) -> str:
        return os.path.join(self.path(MAPPING_PROCESSING_DIRECTORY), f"bwa-index_{self.run_label}")

    def processing(self, suffix: str) -> str:
        # files in the mapping processing directory, e.g. "{label}.mapped_reads_to_contigs.sam"
        return os.path.join(self.path(MAPPING_PROCESSING_DIRECTORY), f"{self.run_label}{suffix}")


def raw_read_files(library_type: LibraryType, accession: str, directory: str) -> List[str]:
    # fasterq-dump --split-3 naming for unpaired and paired reads
    if library_type is LibraryType.SINGLE:
        return [os.path.join(directory, f"{accession}{RAW_SINGLE_SUFFIX}")]
    if library_type is LibraryType.PAIRED:
        return [os.path.join(directory, f"{accession}{suffix}") for suffix in RAW_PAIRED_SUFFIXES]
    raise UnresolvedLayoutError(f"Library type of {accession} has not been determined")


def trimmed_read_files(library_type: LibraryType, accession: str, directory: str) -> List[str]:
    # trim_galore output naming for unpaired and paired reads
    if library_type is LibraryType.SINGLE:
        return [os.path.join(directory, f"{accession}{TRIMMED_SINGLE_SUFFIX}")]
    if library_type is LibraryType.PAIRED:
        return [
            os.path.join(directory, f"{accession}{suffix}") for suffix in TRIMMED_PAIRED_SUFFIXES
        ]
    raise UnresolvedLayoutError(f"Library type of {accession} has not been determined")


def ensure_directory(path: str) -> str:
    # mkdir -p semantics, but a file in the way is an error
    if os.path.exists(path) and not os.path.isdir(path):
        raise WorkspaceError(f"Cannot create directory {path}: a file with that name exists")
    os.makedirs(path, exist_ok=True)
    return path


class WorkspaceManager:
    def __init__(self, config: RunConfig):
        self.config = config
        self.layout = WorkspaceLayout(root=config.working_dir, run_label=config.run_label)

    def ensure_layout(self) -> WorkspaceLayout:
        # create the top-level directories and the working tree if absent
        for directory in [self.config.working_dir, self.config.temp_dir, self.config.final_dir]:
            ensure_directory(directory)
        for relative in RUN_DIRECTORIES:
            ensure_directory(self.layout.path(relative))
        logger.info(f"Workspace ready at {self.config.working_dir}")
        return self.layout

    def install_helpers(self) -> List[str]:
        # locate every helper before copying any of them
        sources: List[Tuple[str, str]] = []
        missing = []
        for helper in HELPER_SCRIPTS:
            source = os.path.join(self.config.home_dir, helper)
            if os.path.isfile(source):
                sources.append((helper, source))
            else:
                missing.append(helper)
        if missing:
            raise MissingDependencyError(
                f"Cannot find mandatory helper scripts in {self.config.home_dir}: "
                f"{', '.join(missing)}. Please download them from {HELPER_SOURCE_URL}"
            )
        installed = []
        for helper, source in sources:
            destination = os.path.join(self.layout.scripts_dir, helper)
            if os.path.isfile(destination) and filecmp.cmp(source, destination, shallow=False):
                logger.info(f"Helper script {helper} already installed")
            else:
                logger.info(f"Copying helper script {helper} to {self.layout.scripts_dir}")
                shutil.copy2(source, destination)
            installed.append(destination)
        return installed
