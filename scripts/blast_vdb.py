"""Search SRA runs directly for a query sequence with the BLAST+ vdb tools."""
import argparse
import datetime
import logging
import os
import subprocess
import sys
from typing import List, Sequence, Tuple

# the pipeline modules live one directory up
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from constants import EXIT_SUCCESS  # noqa: E402
from errors import ConfigError, InvalidInvocationError  # noqa: E402
from run_config import detect_threads, parse_accessions  # noqa: E402

# create a logger object writing to the given file
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

EVALUE = "1e-9"
MAX_TARGET_SEQS = "100000000"
OUTPUT_FORMAT = "6 qseqid sseqid evalue"

# query type -> (program, task)
SEARCHES = {
    "nucl": ("blastn_vdb", "megablast"),
    "prot": ("tblastn_vdb", "tblastn"),
}


def select_search(query_type: str) -> Tuple[str, str]:
    if query_type not in SEARCHES:
        raise InvalidInvocationError(
            f"Invalid query type '{query_type}'; use 'nucl' for nucleotide or 'prot' for protein queries"
        )
    return SEARCHES[query_type]


def search_label(accessions: Sequence[str]) -> str:
    # e.g. SRR1001-SRR10002, or the accession itself for a single run
    if len(accessions) == 1:
        return accessions[0]
    return f"{accessions[0]}-{accessions[-1]}"


def build_command(
    query: str, query_type: str, accessions: Sequence[str], output: str, threads: int
) -> List[str]:
    program, task = select_search(query_type)
    return [
        program,
        "-task", task,
        "-db", " ".join(accessions),
        "-query", query,
        "-out", output,
        "-outfmt", OUTPUT_FORMAT,
        "-num_threads", str(threads),
        "-evalue", EVALUE,
        "-max_target_seqs", MAX_TARGET_SEQS,
    ]


def setup_logger(filename: str) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] %(levelname)s: %(message)s",
        handlers=[logging.FileHandler(filename), logging.StreamHandler()],
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="BLAST a query sequence against SRA runs")
    parser.add_argument("-s", "--samples", type=str, required=True, help="SRA run accessions separated by commas")
    parser.add_argument("-q", "--query", type=str, required=True, help="FASTA file holding the query sequence")
    parser.add_argument("-t", "--type", type=str, required=True, help="Query type, 'nucl' or 'prot'")
    parser.add_argument("-n", "--threads", type=str, help="Number of CPUs to use [default=auto determine]")
    parser.add_argument("-o", "--output_dir", type=str, default=".", help="Directory for the results")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    timestamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
    try:
        accessions = parse_accessions(args.samples)
        label = search_label(accessions)
        os.makedirs(args.output_dir, exist_ok=True)
        setup_logger(os.path.join(args.output_dir, f"{label}.blast_vdb.{timestamp}.log"))
        output = os.path.join(args.output_dir, f"{label}.{args.type}.blast_vdb.txt")
        command = build_command(args.query, args.type, accessions, output, detect_threads(args.threads))
    except (ConfigError, InvalidInvocationError) as e:
        logger.error(f"{e}")
        return e.exit_code
    logger.info(f"Running `{' '.join(command)}`...")
    status = subprocess.Popen(command).wait()
    if status != 0:
        logger.error(f"{command[0]} failed with exit status {status}")
        return status
    logger.info(f"Search results written to {output}")
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
