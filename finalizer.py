import logging
import os
import shutil
from datetime import datetime
from glob import escape, glob
from typing import List, Optional

from constants import (
    DATA_CONTIGS_DIRECTORY,
    FASTQ_DIRECTORIES,
    FASTQ_README,
    FINAL_ANALYSIS_DIRECTORIES,
    FINAL_MAPPING_SUFFIXES,
    MAPPING_DIRECTORY,
    MAPPING_PROCESSING_DIRECTORY,
    SCRIPTS_DIRECTORY,
    TIMELOGS_DIRECTORY,
)
from run_config import RunConfig
from stage_runner import TIMESTAMP_FORMAT, Timelog
from workspace import WorkspaceLayout, ensure_directory

logger = logging.getLogger(__name__)


def is_current(source: str, destination: str) -> bool:
    # same size and modification time means the copy is up to date
    if not os.path.isfile(destination):
        return False
    source_stat, destination_stat = os.stat(source), os.stat(destination)
    return (
        source_stat.st_size == destination_stat.st_size
        and int(source_stat.st_mtime) == int(destination_stat.st_mtime)
    )


def sync_files(filenames: List[str], destination_dir: str) -> List[str]:
    """Copy files into destination_dir, only adding or updating.

    Nothing already in destination_dir is ever removed.
    """
    ensure_directory(destination_dir)
    copied = []
    for filename in sorted(filenames):
        if not os.path.isfile(filename):
            continue
        destination = os.path.join(destination_dir, os.path.basename(filename))
        if is_current(filename, destination):
            continue
        shutil.copy2(filename, destination)
        copied.append(destination)
    return copied


def sync_tree(source_dir: str, destination_dir: str) -> List[str]:
    # recursive add/update copy of a whole directory
    copied = []
    for root, _, files in os.walk(source_dir):
        relative = os.path.relpath(root, source_dir)
        target = os.path.normpath(os.path.join(destination_dir, relative))
        copied += sync_files([os.path.join(root, name) for name in files], target)
    return copied


class ResultFinalizer:
    def __init__(self, config: RunConfig, layout: WorkspaceLayout, timelog: Optional[Timelog] = None):
        self.config = config
        self.layout = layout
        self.timelog = timelog

    def final_path(self, relative: str) -> str:
        return os.path.join(self.config.final_dir, relative)

    def run_files(self, relative: str, suffix: str = "") -> List[str]:
        # files of this run only, e.g. analysis/contigs/{label}.*
        pattern = os.path.join(self.layout.path(relative), f"{escape(self.config.run_label)}.*{suffix}")
        return [filename for filename in glob(pattern) if os.path.isfile(filename)]

    def sync_results(self, new_database_dir: Optional[str] = None) -> List[str]:
        copied = []
        # timelogs are synced last so the completion message is included
        for relative in FINAL_ANALYSIS_DIRECTORIES:
            if relative != TIMELOGS_DIRECTORY:
                copied += sync_files(self.run_files(relative), self.final_path(relative))
        copied += sync_files(self.run_files(MAPPING_DIRECTORY), self.final_path(MAPPING_DIRECTORY))
        for suffix in FINAL_MAPPING_SUFFIXES:
            copied += sync_files(
                self.run_files(MAPPING_PROCESSING_DIRECTORY, suffix),
                self.final_path(MAPPING_PROCESSING_DIRECTORY),
            )
        scripts = [
            os.path.join(self.layout.scripts_dir, name) for name in os.listdir(self.layout.scripts_dir)
        ]
        copied += sync_files(scripts, self.final_path(SCRIPTS_DIRECTORY))
        copied += sync_tree(self.layout.data_contigs_dir, self.final_path(DATA_CONTIGS_DIRECTORY))
        if new_database_dir is not None:
            database_dir = self.final_path(os.path.join(SCRIPTS_DIRECTORY, "diamond_db"))
            logger.info(
                f"Copying DIAMOND database & taxonomy files to permanent storage at {database_dir}. "
                f"Next time, use these files with the flag '-d {os.path.join(database_dir, 'nr')}'"
            )
            copied += sync_tree(new_database_dir, database_dir)
        return copied

    def write_fastq_readmes(self) -> List[str]:
        # raw and trimmed reads are too large to keep in permanent storage
        readmes = []
        for relative in FASTQ_DIRECTORIES:
            readme = os.path.join(ensure_directory(self.final_path(relative)), FASTQ_README)
            with open(readme, "w") as f:
                f.write(
                    "FASTQ files not saved long-term; may be available in the working "
                    f"directory if needed: {self.layout.path(relative)}\n"
                )
            readmes.append(readme)
        return readmes

    def remove_temp(self) -> bool:
        # the results are already safe, so a leftover temp directory is only a warning
        if not os.path.exists(self.config.temp_dir):
            return True
        try:
            shutil.rmtree(self.config.temp_dir)
        except OSError as e:
            logger.warning(f"Could not remove temporary directory {self.config.temp_dir}: {e}")
            return False
        logger.info(f"Removed temporary directory {self.config.temp_dir}")
        return True

    def finalize(self, new_database_dir: Optional[str] = None) -> List[str]:
        logger.info(f"Saving results of {self.config.run_label} to {self.config.final_dir}")
        copied = self.sync_results(new_database_dir)
        self.write_fastq_readmes()
        self.remove_temp()
        if self.timelog is not None:
            self.timelog.write(
                f"dnatax pipeline finished successfully at {datetime.now().strftime(TIMESTAMP_FORMAT)}; "
                f"final files are located at {self.config.final_dir}"
            )
        copied += sync_files(self.run_files(TIMELOGS_DIRECTORY), self.final_path(TIMELOGS_DIRECTORY))
        logger.info(f"Finished saving N={len(copied)} files to {self.config.final_dir}")
        return copied
