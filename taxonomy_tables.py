import logging

import pandas as pd

from constants import MAPPED_TABLE_COLUMNS, TAXONOMY_COLUMNS, VIRUS_MARKER

logger = logging.getLogger(__name__)


def read_taxonomy_table(filename: str) -> pd.DataFrame:
    # read in the per-contig taxonomy calls written by diamondToTaxonomy.py
    logger.info(f"Reading taxonomy table from {filename}")
    return pd.read_table(
        filename, header=None, names=TAXONOMY_COLUMNS, dtype=str, keep_default_na=False
    ).fillna("")


def read_idxstats(filename: str) -> pd.DataFrame:
    # samtools idxstats: contig, length, mapped reads, unmapped reads
    counts = pd.read_table(
        filename,
        header=None,
        names=["Contig_name", "Contig_length", "Mapped_reads", "Unmapped_reads"],
        dtype={"Contig_name": str},
    )
    # the trailing '*' row only holds unmapped reads, already reported by flagstat
    counts = counts[counts["Contig_name"] != "*"]
    return counts[["Contig_name", "Contig_length", "Mapped_reads"]]


def write_counts(counts: pd.DataFrame, filename: str) -> None:
    counts.to_csv(filename, sep="\t", header=False, index=False)


def parse_average_read_length(filename: str) -> float:
    # pull "SN  average length:  N" out of a samtools stats report
    with open(filename, "r") as f:
        for line in f:
            fields = line.rstrip("\n").split("\t")
            if len(fields) >= 3 and fields[0] == "SN" and fields[1] == "average length:":
                return float(fields[2])
    logger.warning(f"No average read length found in {filename}, assuming 0")
    return 0.0


def build_mapped_table(
    taxonomy: pd.DataFrame, counts: pd.DataFrame, average_read_length: float
) -> pd.DataFrame:
    """Join taxonomy calls with per-contig read counts and add a coverage value.

    Coverage is (mapped reads * average read length) / contig length, i.e. the
    mean per-nucleotide depth across the contig. Contigs without a taxonomy
    call are dropped; the table is ordered longest contig first.
    """
    mapped = taxonomy.merge(counts, on="Contig_name", how="inner")
    mapped["Coverage_value"] = (
        mapped["Mapped_reads"] * average_read_length / mapped["Contig_length"]
    )
    mapped = mapped.sort_values("Contig_length", ascending=False, kind="stable")
    return mapped[MAPPED_TABLE_COLUMNS].reset_index(drop=True)


def write_mapped_table(mapped: pd.DataFrame, filename: str) -> None:
    logger.info(f"Writing mapped taxonomy table with N={len(mapped)} contigs to {filename}")
    mapped.to_csv(filename, sep="\t", index=False)


def select_viral_rows(taxonomy: pd.DataFrame) -> pd.DataFrame:
    # keep every contig whose lineage mentions Viruses
    if taxonomy.empty:
        return taxonomy
    is_viral = taxonomy.apply(
        lambda column: column.astype(str).str.contains(VIRUS_MARKER, regex=False)
    ).any(axis=1)
    return taxonomy[is_viral]


def write_viral_tables(taxonomy: pd.DataFrame, taxonomy_filename: str, ids_filename: str) -> int:
    # save the virus-specific taxonomy rows and the contig ids for seqtk subseq
    viral = select_viral_rows(taxonomy)
    viral.to_csv(taxonomy_filename, sep="\t", header=False, index=False)
    with open(ids_filename, "w") as f:
        for contig in viral["Contig_name"]:
            f.write(f"{contig}\n")
    return len(viral)


def count_fasta_records(filename: str) -> int:
    with open(filename, "r") as f:
        return sum(1 for line in f if line.startswith(">"))
