import logging
import os

from errors import AmbiguousLibraryError, MixedLibraryError
from run_config import LibraryType, RunConfig
from workspace import raw_read_files

logger = logging.getLogger(__name__)


def probe_sample(accession: str, raw_reads_dir: str) -> LibraryType:
    # classify one sample by fasterq-dump's naming of its downloaded files
    has_single = all(
        os.path.isfile(path)
        for path in raw_read_files(LibraryType.SINGLE, accession, raw_reads_dir)
    )
    paired_present = [
        os.path.isfile(path)
        for path in raw_read_files(LibraryType.PAIRED, accession, raw_reads_dir)
    ]
    if has_single and not any(paired_present):
        return LibraryType.SINGLE
    if all(paired_present) and not has_single:
        return LibraryType.PAIRED
    raise AmbiguousLibraryError(
        f"Cannot determine if the reads of {accession} in {raw_reads_dir} "
        "are paired-end or single-end"
    )


def resolve_library_type(config: RunConfig, raw_reads_dir: str) -> LibraryType:
    """Decide whether the whole run is paired-end or single-end.

    An explicit library type always wins and the filesystem is not probed.
    Otherwise every sample is probed and the first unresolvable one aborts
    the run; single and paired samples may not be mixed.
    """
    if config.library_type is not LibraryType.UNKNOWN:
        logger.info(f"Using library type provided by user: {config.library_type.value}")
        return config.library_type
    n_single, n_paired = 0, 0
    for accession in config.sample_accessions:
        if probe_sample(accession, raw_reads_dir) is LibraryType.SINGLE:
            n_single += 1
        else:
            n_paired += 1
    if n_single and n_paired:
        raise MixedLibraryError(
            f"Mixed input libraries: {n_single} single-end and {n_paired} paired-end samples"
        )
    library_type = LibraryType.PAIRED if n_paired else LibraryType.SINGLE
    logger.info(
        f"Determined library type {library_type.value} for N={len(config.sample_accessions)} samples"
    )
    return library_type
