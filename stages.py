import logging
import os
import shutil
from dataclasses import dataclass
from typing import Callable, List, Optional

from constants import (
    DIAMOND_DOWNLOADS,
    DIAMOND_INDEX_CHUNKS,
    DIAMOND_TAXONOMY_FILES,
    FALLBACK_BLOCK_SIZE,
    GB_PER_DIAMOND_BLOCK,
    HELPER_SCRIPTS,
    MIN_CONTIG_LENGTH,
    RAMDISK_DIRECTORY,
)
from descriptor import build_descriptor, write_descriptor
from errors import (
    MissingDatabaseError,
    MissingDependencyError,
    MissingResultError,
    MissingToolError,
    UnresolvedLayoutError,
)
from finalizer import ResultFinalizer
from library_type import resolve_library_type
from run_config import LibraryType, RunConfig
from stage_runner import FailurePolicy, StageRunner
from taxonomy_tables import (
    build_mapped_table,
    count_fasta_records,
    parse_average_read_length,
    read_idxstats,
    read_taxonomy_table,
    write_counts,
    write_mapped_table,
    write_viral_tables,
)
from workspace import WorkspaceLayout, ensure_directory, raw_read_files, trimmed_read_files

logger = logging.getLogger(__name__)


class StageContext:
    """State shared by the stages of one run.

    The run configuration is only ever replaced once, when the library type
    is auto-detected; a DIAMOND database built during the run is remembered
    so that the finalizer can preserve it.
    """

    def __init__(
        self,
        config: RunConfig,
        layout: WorkspaceLayout,
        runner: StageRunner,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.config = config
        self.layout = layout
        self.runner = runner
        self.which = which
        self.diamond_db = config.diamond_db_path
        self.new_database_dir: Optional[str] = None

    @property
    def library_type(self) -> LibraryType:
        return self.config.library_type

    def resolve_library_type(self, library_type: LibraryType) -> None:
        self.config = self.config.with_library_type(library_type)


@dataclass(frozen=True)
class Stage:
    name: str
    action: Callable[[StageContext], int]
    failure_policy: FailurePolicy = FailurePolicy.ABORT


def require_tool(context: StageContext, tool: str) -> None:
    # make sure the external tool is installed before the stage touches any data
    if context.which(tool) is None:
        raise MissingToolError(
            f"This pipeline requires '{tool}' but it could not be found. "
            "Please install this application or activate the pipeline's environment."
        )


def require_layout(context: StageContext, purpose: str) -> LibraryType:
    if context.library_type is LibraryType.UNKNOWN:
        raise UnresolvedLayoutError(
            f"Could not {purpose}: library type is neither paired nor single"
        )
    return context.library_type


def require_file(filename: str, description: str) -> str:
    if not os.path.isfile(filename):
        raise MissingResultError(f"No {description} found at {filename}")
    return filename


def samtools_threads(config: RunConfig) -> str:
    # samtools --threads counts additional threads beyond the main one
    return str(max(config.thread_count - 1, 0))


def download(context: StageContext) -> int:
    """Download every accession from the SRA with fasterq-dump.

    fasterq-dump exits non-zero when its output files already exist, so the
    exit status of every accession is collected rather than stopping early.
    """
    require_tool(context, "fasterq-dump")
    config = context.config
    logger.info(f"Downloading N={len(config.sample_accessions)} accessions from the SRA")
    exit_status = 0
    for accession in config.sample_accessions:
        status = context.runner.execute(
            [
                "fasterq-dump",
                "--split-3",
                "-t", config.temp_dir,
                "-e", str(config.thread_count),
                f"--mem={config.memory_budget_gb}",
                "-p",
                "--skip-technical",
                "--rowid-as-name",
                "--outdir", context.layout.raw_reads_dir,
                accession,
            ]
        )
        if status != 0:
            logger.warning(f"fasterq-dump exited with status {status} for {accession}")
            exit_status = status
    return exit_status


def determine_library_type(context: StageContext) -> int:
    library_type = resolve_library_type(context.config, context.layout.raw_reads_dir)
    context.resolve_library_type(library_type)
    return 0


def trim_adapters(context: StageContext) -> int:
    require_tool(context, "trim_galore")
    library_type = require_layout(context, "trim adapters")
    commands = []
    for accession in context.config.sample_accessions:
        command = ["trim_galore"]
        if library_type is LibraryType.PAIRED:
            command.append("--paired")
        command += ["--stringency", "5", "--quality", "1", "-o", context.layout.trimmed_reads_dir]
        command += raw_read_files(library_type, accession, context.layout.raw_reads_dir)
        commands.append(command)
    logger.info(
        f"Trimming adapters in {library_type.value}-end mode for N={len(commands)} samples"
    )
    return context.runner.execute_all(commands)


def assemble_contigs(context: StageContext) -> int:
    require_tool(context, "rnaspades.py")
    require_tool(context, "seqtk")
    library_type = require_layout(context, "build the assembler dataset descriptor")
    config, layout = context.config, context.layout
    # describe the trimmed reads for rnaSPAdes
    descriptor = build_descriptor(
        library_type,
        config.sample_accessions,
        layout.trimmed_reads_dir,
        relative_to=os.path.dirname(layout.descriptor),
    )
    write_descriptor(descriptor, layout.descriptor)
    assembly_dir = ensure_directory(os.path.join(config.temp_dir, "rnaspades"))
    status = context.runner.execute(
        [
            "rnaspades.py",
            "--threads", str(config.thread_count),
            "-m", str(config.memory_budget_gb),
            "--tmp-dir", config.temp_dir,
            "--dataset", layout.descriptor,
            "-o", assembly_dir,
        ],
        cwd=layout.scripts_dir,
    )
    if status != 0:
        return status
    # drop every contig shorter than the minimum length
    transcripts = require_file(os.path.join(assembly_dir, "transcripts.fasta"), "assembled transcripts")
    filtered = os.path.join(assembly_dir, "transcripts.filtered.fasta")
    status = context.runner.execute(
        ["seqtk", "seq", "-L", str(MIN_CONTIG_LENGTH), transcripts], stdout=filtered
    )
    if status != 0:
        return status
    # copy the results from the temporary directory into the workspace
    contigs_dir = os.path.dirname(layout.contigs)
    shutil.copy2(filtered, layout.contigs)
    shutil.copy2(transcripts, os.path.join(contigs_dir, f"{config.run_label}.contigs.unfiltered.fasta"))
    for source, suffix in [("transcripts.paths", "contigs.paths"), ("spades.log", "contigs.log")]:
        if os.path.isfile(os.path.join(assembly_dir, source)):
            shutil.copy2(
                os.path.join(assembly_dir, source),
                os.path.join(contigs_dir, f"{config.run_label}.{suffix}"),
            )
    logger.info(f"Contig assembly completed with outputs written to {contigs_dir}")
    return 0


def diamond_block_size(memory_budget_gb: int) -> int:
    # each DIAMOND block takes roughly 10GB of memory
    return memory_budget_gb // GB_PER_DIAMOND_BLOCK or FALLBACK_BLOCK_SIZE


def database_is_usable(context: StageContext, database: Optional[str]) -> bool:
    # the database must open and have the NCBI taxonomy files beside it
    if not database:
        return False
    if context.runner.execute(["diamond", "dbinfo", "-d", database]) != 0:
        logger.warning(f"DIAMOND database {database} is missing or corrupt")
        return False
    database_dir = os.path.dirname(database)
    missing = [
        name for name in DIAMOND_TAXONOMY_FILES if not os.path.isfile(os.path.join(database_dir, name))
    ]
    if missing:
        logger.warning(
            f"NCBI taxonomy files {', '.join(missing)} were not found beside the DIAMOND "
            "database, so it was likely built without taxonomy information"
        )
        return False
    return True


def build_database(context: StageContext) -> int:
    require_tool(context, "wget")
    database_dir = ensure_directory(os.path.join(context.config.temp_dir, "diamond_db"))
    logger.warning(
        "Downloading the NCBI NR database and taxonomy files to build a new DIAMOND "
        f"database in {database_dir}; this may take a while"
    )
    commands = [
        ["wget", "-O", os.path.join(database_dir, name), url]
        for name, url in DIAMOND_DOWNLOADS.items()
    ]
    database = os.path.join(database_dir, "nr")
    commands.append(
        [
            "diamond",
            "makedb",
            "--in", os.path.join(database_dir, "nr.gz"),
            "-d", database,
            "--taxonmap", os.path.join(database_dir, "prot.accession2taxid.gz"),
            "--taxonnodes", os.path.join(database_dir, "taxdmp.zip"),
        ]
    )
    status = context.runner.execute_all(commands)
    if status == 0:
        context.diamond_db = database
        context.new_database_dir = database_dir
    return status


def classify_taxonomy(context: StageContext) -> int:
    require_tool(context, "diamond")
    config, layout = context.config, context.layout
    contigs = require_file(layout.contigs, "assembled contigs")
    if not database_is_usable(context, context.diamond_db):
        if not config.download_database:
            raise MissingDatabaseError(
                "No usable DIAMOND database configured. Specify the full path to the database "
                "with '-d' and keep prot.accession2taxid.gz and taxdmp.zip in the same directory"
            )
        status = build_database(context)
        if status != 0:
            return status
    temp_dir = RAMDISK_DIRECTORY if os.path.isdir(RAMDISK_DIRECTORY) else config.temp_dir
    return context.runner.execute(
        [
            "diamond",
            "blastx",
            "--verbose",
            "--more-sensitive",
            "--threads", str(config.thread_count),
            "--db", context.diamond_db,
            "--query", contigs,
            "--out", layout.diamond_results,
            "--outfmt", "102",
            "--max-hsps", "1",
            "--top", "1",
            "--block-size", str(diamond_block_size(config.memory_budget_gb)),
            "--index-chunks", str(DIAMOND_INDEX_CHUNKS),
            "--tmpdir", temp_dir,
        ]
    )


def translate_taxonomy(context: StageContext) -> int:
    require_tool(context, "python3")
    layout = context.layout
    script = os.path.join(layout.scripts_dir, HELPER_SCRIPTS[0])
    if not os.path.isfile(script):
        raise MissingDependencyError(f"No {HELPER_SCRIPTS[0]} script found in {layout.scripts_dir}")
    diamond_results = require_file(layout.diamond_results, "DIAMOND results file")
    # the helper writes its output beside its input
    diamond_dir = os.path.dirname(diamond_results)
    status = context.runner.execute(
        ["python3", script, os.path.basename(diamond_results)], cwd=diamond_dir
    )
    if status != 0:
        return status
    translated = os.path.join(diamond_dir, os.path.basename(layout.taxonomy_results))
    require_file(translated, "translated taxonomy file")
    os.replace(translated, layout.taxonomy_results)
    return 0


def concatenate(filenames: List[str], output: str) -> str:
    with open(output, "wb") as out:
        for filename in filenames:
            with open(filename, "rb") as f:
                shutil.copyfileobj(f, out)
    return output


def map_reads(context: StageContext) -> int:
    """Map the trimmed reads back to the contigs and tabulate per-contig coverage."""
    library_type = require_layout(context, "map reads to contigs")
    require_tool(context, "bwa")
    require_tool(context, "samtools")
    config, layout, runner = context.config, context.layout, context.runner
    contigs = require_file(layout.contigs, "assembled contigs")
    taxonomy_table = require_file(layout.taxonomy_results, "taxonomy results file")
    trimmed = [
        [
            require_file(filename, "trimmed reads file")
            for filename in trimmed_read_files(library_type, accession, layout.trimmed_reads_dir)
        ]
        for accession in config.sample_accessions
    ]
    runner.timelog.write(
        "Mapping reads to contigs, and constructing a final table with contig names, "
        "taxonomic assignments, and coverage values"
    )
    index = layout.bwa_index
    status = runner.execute(["bwa", "index", "-p", index, contigs])
    if status != 0:
        return status
    # pool the trimmed reads of every sample, one file per mate
    mates = list(zip(*trimmed))
    pooled = [
        concatenate(list(files), layout.processing(f".reads_{mate}.fq"))
        for mate, files in enumerate(mates, start=1)
    ]
    sam = layout.processing(".mapped_reads_to_contigs.sam")
    unsorted_bam = layout.processing(".mapped_reads_to_contigs.no_unmapped_reads.bam")
    sorted_bam = layout.processing(".mapped_reads_to_contigs.no_unmapped_reads.sorted.bam")
    idxstats = layout.processing(".mapped_reads_to_contigs.no_unmapped_reads.sorted.idxstats.txt")
    counts = layout.processing(".mapped_reads_to_contigs.no_unmapped_reads.sorted.counts.txt")
    bam_stats = layout.processing(".mapped_reads_to_contigs.no_unmapped_reads.sorted.bam.stats")
    threads = samtools_threads(config)
    steps = [
        (["bwa", "mem", "-t", str(config.thread_count), index] + pooled, sam),
        (["samtools", "flagstat", "--threads", threads, sam],
         layout.processing(".mapped_reads_to_contigs.stats")),
        (["samtools", "view", "--threads", threads, "-F", "4", "-bh", "-o", unsorted_bam, sam], None),
        (["samtools", "sort", "--threads", threads, "-o", sorted_bam, unsorted_bam], None),
        (["samtools", "index", sorted_bam], None),
        (["samtools", "idxstats", "--threads", threads, sorted_bam], idxstats),
        (["samtools", "stats", "--threads", threads, sorted_bam], bam_stats),
    ]
    for command, stdout in steps:
        status = runner.execute(command, stdout=stdout)
        if status != 0:
            return status
    # the uncompressed alignments and pooled reads are no longer needed
    for filename in pooled + [sam, unsorted_bam]:
        if os.path.exists(filename):
            os.remove(filename)
    per_contig = read_idxstats(idxstats)
    write_counts(per_contig, counts)
    mapped = build_mapped_table(
        read_taxonomy_table(taxonomy_table), per_contig, parse_average_read_length(bam_stats)
    )
    write_mapped_table(mapped, layout.mapped_table)
    runner.timelog.write(
        "Note on the 'Coverage_value' determination in the final mapped table: "
        "(number_mapped_reads * read_length) / contig_length, "
        "the average coverage per nucleotide across the contig"
    )
    return 0


def extract_viral_sequences(context: StageContext) -> int:
    require_tool(context, "seqtk")
    config, layout = context.config, context.layout
    require_file(layout.diamond_results, "DIAMOND results file")
    taxonomy = read_taxonomy_table(require_file(layout.taxonomy_results, "taxonomy results file"))
    ids = os.path.join(ensure_directory(config.temp_dir), f"{config.run_label}.viruses.ids.txt")
    write_viral_tables(taxonomy, layout.viral_taxonomy, ids)
    status = context.runner.execute(
        ["seqtk", "subseq", layout.contigs, ids], stdout=layout.viral_fasta
    )
    if status != 0:
        return status
    logger.info(
        f"Number of viral contigs in {config.run_label}: {count_fasta_records(layout.viral_fasta)}"
    )
    return 0


def finalize(context: StageContext) -> int:
    finalizer = ResultFinalizer(context.config, context.layout, context.runner.timelog)
    finalizer.finalize(new_database_dir=context.new_database_dir)
    return 0


STAGES = [
    Stage("download", download, FailurePolicy.TOLERATE),
    Stage("determine_library_type", determine_library_type),
    Stage("trim_adapters", trim_adapters),
    Stage("assemble_contigs", assemble_contigs),
    Stage("classify_taxonomy", classify_taxonomy),
    Stage("translate_taxonomy", translate_taxonomy),
    Stage("map_reads", map_reads),
    Stage("extract_viral_sequences", extract_viral_sequences),
    Stage("finalize", finalize),
]
