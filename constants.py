# pipeline steps, in order, from raw SRA accessions to final storage
PIPELINE_STEPS = [
    "download",
    "determine_library_type",
    "trim_adapters",
    "assemble_contigs",
    "classify_taxonomy",
    "translate_taxonomy",
    "map_reads",
    "extract_viral_sequences",
    "finalize",
]
# workspace directories, relative to the working directory
RAW_READS_DIRECTORY = "data/raw-sra"
TRIMMED_READS_DIRECTORY = "data/fastq-adapter-trimmed"
DATA_CONTIGS_DIRECTORY = "data/contigs"
TIMELOGS_DIRECTORY = "analysis/timelogs"
CONTIGS_DIRECTORY = "analysis/contigs"
DIAMOND_DIRECTORY = "analysis/diamond"
TAXONOMY_DIRECTORY = "analysis/taxonomy"
VIRUSES_DIRECTORY = "analysis/viruses"
MAPPING_DIRECTORY = "analysis/mapping"
MAPPING_PROCESSING_DIRECTORY = "analysis/mapping/processing"
SCRIPTS_DIRECTORY = "scripts"
RUN_DIRECTORIES = [
    RAW_READS_DIRECTORY,
    TRIMMED_READS_DIRECTORY,
    DATA_CONTIGS_DIRECTORY,
    TIMELOGS_DIRECTORY,
    CONTIGS_DIRECTORY,
    DIAMOND_DIRECTORY,
    TAXONOMY_DIRECTORY,
    VIRUSES_DIRECTORY,
    MAPPING_DIRECTORY,
    MAPPING_PROCESSING_DIRECTORY,
    SCRIPTS_DIRECTORY,
]
# analysis subtrees whose run files are copied to final storage
FINAL_ANALYSIS_DIRECTORIES = [
    CONTIGS_DIRECTORY,
    DIAMOND_DIRECTORY,
    TAXONOMY_DIRECTORY,
    TIMELOGS_DIRECTORY,
    VIRUSES_DIRECTORY,
]
# mapping intermediates worth keeping, by filename suffix
FINAL_MAPPING_SUFFIXES = ["sorted.bam", "sorted.counts.txt", "stats"]
# fastq directories replaced by a README stub in final storage
FASTQ_DIRECTORIES = [RAW_READS_DIRECTORY, TRIMMED_READS_DIRECTORY]
FASTQ_README = "README.txt"

# helper scripts that must be present in the home directory
HELPER_SCRIPTS = ["diamondToTaxonomy.py"]
HELPER_SOURCE_URL = "github.com/austinreidmanny/dnatax"

# run parameter defaults
DEFAULT_MEMORY_GB = 16
DEFAULT_THREADS = 1
DEFAULT_WORKING_DIR = "./dnatax/"
DEFAULT_FINAL_DIR = "./dnatax/"
DEFAULT_TEMP_ROOT = "/tmp/dnatax"
DEFAULT_LOG_FILE = "DNAtax.log"
# above this many accessions the run label is abbreviated to first-last
LABEL_EXPANSION_LIMIT = 5

# read file naming used by fasterq-dump and trim_galore
RAW_SINGLE_SUFFIX = ".fastq"
RAW_PAIRED_SUFFIXES = ("_1.fastq", "_2.fastq")
TRIMMED_SINGLE_SUFFIX = "_trimmed.fq"
TRIMMED_PAIRED_SUFFIXES = ("_1_val_1.fq", "_2_val_2.fq")

# assembly parameters
MIN_CONTIG_LENGTH = 300
PAIRED_ORIENTATION = "fr"

# classification parameters
GB_PER_DIAMOND_BLOCK = 10
FALLBACK_BLOCK_SIZE = 2
DIAMOND_INDEX_CHUNKS = 2
RAMDISK_DIRECTORY = "/dev/shm/"
DIAMOND_TAXONOMY_FILES = ["prot.accession2taxid.gz", "taxdmp.zip"]
DIAMOND_DOWNLOADS = {
    "nr.gz": "ftp://ftp.ncbi.nlm.nih.gov/blast/db/FASTA/nr.gz",
    "prot.accession2taxid.gz": "ftp://ftp.ncbi.nlm.nih.gov/pub/taxonomy/accession2taxid/prot.accession2taxid.gz",
    "taxdmp.zip": "ftp://ftp.ncbi.nlm.nih.gov/pub/taxonomy/taxdmp.zip",
}

# mapping parameters
TAXONOMY_COLUMNS = [
    "Contig_name",
    "Taxon_ID",
    "e-value",
    "Superkingdom",
    "Kingdom",
    "Phylum",
    "Class",
    "Order",
    "Family",
    "Genus",
    "Species",
]
MAPPED_TABLE_COLUMNS = TAXONOMY_COLUMNS + [
    "Contig_length",
    "Mapped_reads",
    "Coverage_value",
]
VIRUS_MARKER = "Viruses"

# exit codes surfaced to calling infrastructure
EXIT_SUCCESS = 0
EXIT_CONFIG = 1
EXIT_AMBIGUOUS_LIBRARY = 2
EXIT_MIXED_LIBRARY = 3
EXIT_MISSING_DATABASE = 4
EXIT_MISSING_HELPER = 5
EXIT_MISSING_TOOL = 6
EXIT_MISSING_RESULT = 7
EXIT_UNRESOLVED_LAYOUT = 8
EXIT_INVALID_INVOCATION = 9
EXIT_ENVIRONMENT = 10
EXIT_STAGE_FAILED = 11
EXIT_TIMELOG = 12
