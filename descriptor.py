"""Dataset descriptor handed to rnaSPAdes through ``--dataset``."""
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Sequence, Union

import yaml

from constants import PAIRED_ORIENTATION
from errors import UnresolvedLayoutError
from run_config import LibraryType
from workspace import trimmed_read_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PairedDescriptor:
    left: List[str]
    right: List[str]
    orientation: str = PAIRED_ORIENTATION

    def to_library(self) -> Dict:
        return {
            "orientation": self.orientation,
            "type": "paired-end",
            "left reads": list(self.left),
            "right reads": list(self.right),
        }


@dataclass(frozen=True)
class SingleDescriptor:
    reads: List[str]

    def to_library(self) -> Dict:
        return {"type": "single", "single reads": list(self.reads)}


Descriptor = Union[PairedDescriptor, SingleDescriptor]


def build_descriptor(
    library_type: LibraryType,
    sample_accessions: Sequence[str],
    trimmed_reads_dir: str,
    relative_to: str,
) -> Descriptor:
    # paths are written relative to the descriptor's own directory
    files = [
        [
            os.path.relpath(path, relative_to)
            for path in trimmed_read_files(library_type, accession, trimmed_reads_dir)
        ]
        for accession in sample_accessions
    ]
    if library_type is LibraryType.PAIRED:
        return PairedDescriptor(
            left=[pair[0] for pair in files], right=[pair[1] for pair in files]
        )
    if library_type is LibraryType.SINGLE:
        return SingleDescriptor(reads=[reads[0] for reads in files])
    raise UnresolvedLayoutError(
        "Could not build the assembler dataset descriptor: library type is unknown"
    )


def write_descriptor(descriptor: Descriptor, filename: str) -> str:
    # rnaSPAdes expects a list of libraries
    logger.info(f"Writing assembler dataset descriptor to {filename}")
    with open(filename, "w") as f:
        yaml.safe_dump([descriptor.to_library()], f, default_flow_style=False, sort_keys=False)
    return filename


def load_descriptor(filename: str) -> Descriptor:
    with open(filename, "r") as f:
        libraries = yaml.safe_load(f)
    library = libraries[0]
    if library["type"] == "paired-end":
        return PairedDescriptor(
            left=library["left reads"],
            right=library["right reads"],
            orientation=library.get("orientation", PAIRED_ORIENTATION),
        )
    return SingleDescriptor(reads=library["single reads"])
