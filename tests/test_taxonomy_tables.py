"""Tests for the pandas taxonomy and mapping tables."""
import pandas as pd
import pytest

from constants import MAPPED_TABLE_COLUMNS, TAXONOMY_COLUMNS
from taxonomy_tables import (
    build_mapped_table,
    count_fasta_records,
    parse_average_read_length,
    read_idxstats,
    read_taxonomy_table,
    select_viral_rows,
    write_viral_tables,
)


def taxonomy_frame(rows):
    return pd.DataFrame(rows, columns=TAXONOMY_COLUMNS)


def row(contig, superkingdom, species):
    return [contig, "1", "1e-10", superkingdom, "", "", "", "", "", "", species]


@pytest.fixture
def taxonomy():
    return taxonomy_frame(
        [
            row("NODE_1", "Viruses", "Tobacco mosaic virus"),
            row("NODE_2", "Eukaryota", "Trichomonas vaginalis"),
            row("NODE_3", "Bacteria", "Escherichia coli"),
        ]
    )


def test_read_taxonomy_table_keeps_empty_ranks(tmp_path):
    filename = tmp_path / "taxonomy.txt"
    filename.write_text("NODE_1\t10239\t1e-50\tViruses\t\t\t\t\t\t\tTMV\n")
    table = read_taxonomy_table(str(filename))
    assert list(table.columns) == TAXONOMY_COLUMNS
    assert table.loc[0, "Kingdom"] == ""
    assert table.loc[0, "Taxon_ID"] == "10239"


def test_read_idxstats_drops_unmapped_row(tmp_path):
    filename = tmp_path / "idxstats.txt"
    filename.write_text("NODE_1\t500\t40\t0\n*\t0\t0\t12\n")
    counts = read_idxstats(str(filename))
    assert list(counts["Contig_name"]) == ["NODE_1"]
    assert list(counts.columns) == ["Contig_name", "Contig_length", "Mapped_reads"]


def test_average_read_length(tmp_path):
    filename = tmp_path / "bam.stats"
    filename.write_text("SN\tsequences:\t50\nSN\taverage length:\t149\n")
    assert parse_average_read_length(str(filename)) == 149.0


def test_average_read_length_missing(tmp_path):
    filename = tmp_path / "bam.stats"
    filename.write_text("SN\tsequences:\t0\n")
    assert parse_average_read_length(str(filename)) == 0.0


def test_mapped_table(taxonomy):
    counts = pd.DataFrame(
        {
            "Contig_name": ["NODE_1", "NODE_2", "NODE_4"],
            "Contig_length": [300, 1000, 700],
            "Mapped_reads": [30, 5, 9],
        }
    )
    mapped = build_mapped_table(taxonomy, counts, average_read_length=100)
    assert list(mapped.columns) == MAPPED_TABLE_COLUMNS
    # longest contig first, contigs without a taxonomy call dropped
    assert list(mapped["Contig_name"]) == ["NODE_2", "NODE_1"]
    assert mapped["Coverage_value"].tolist() == pytest.approx([0.5, 10.0])


def test_select_viral_rows(taxonomy):
    viral = select_viral_rows(taxonomy)
    assert list(viral["Contig_name"]) == ["NODE_1"]


def test_select_viral_rows_empty():
    assert select_viral_rows(taxonomy_frame([])).empty


def test_write_viral_tables(taxonomy, tmp_path):
    taxonomy_filename = tmp_path / "viruses.taxonomy.txt"
    ids_filename = tmp_path / "viruses.ids.txt"
    assert write_viral_tables(taxonomy, str(taxonomy_filename), str(ids_filename)) == 1
    assert ids_filename.read_text() == "NODE_1\n"
    assert taxonomy_filename.read_text().startswith("NODE_1\t1\t1e-10\tViruses")


def test_count_fasta_records(tmp_path):
    filename = tmp_path / "contigs.fasta"
    filename.write_text(">a\nACGT\n>b\nAC\nGT\n")
    assert count_fasta_records(str(filename)) == 2
