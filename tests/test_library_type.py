"""Tests for library type detection from downloaded read files."""
import pytest

from constants import EXIT_AMBIGUOUS_LIBRARY, EXIT_MIXED_LIBRARY
from errors import AmbiguousLibraryError, MixedLibraryError
from library_type import probe_sample, resolve_library_type
from run_config import LibraryType


def touch(directory, *names):
    directory.mkdir(parents=True, exist_ok=True)
    for name in names:
        (directory / name).write_text("@read\nACGT\n+\nIIII\n")


class TestProbeSample:
    def test_single(self, tmp_path):
        touch(tmp_path, "SRR1001.fastq")
        assert probe_sample("SRR1001", str(tmp_path)) is LibraryType.SINGLE

    def test_paired(self, tmp_path):
        touch(tmp_path, "SRR1001_1.fastq", "SRR1001_2.fastq")
        assert probe_sample("SRR1001", str(tmp_path)) is LibraryType.PAIRED

    def test_missing_mate(self, tmp_path):
        touch(tmp_path, "SRR1001_1.fastq")
        with pytest.raises(AmbiguousLibraryError):
            probe_sample("SRR1001", str(tmp_path))

    def test_both_layouts(self, tmp_path):
        touch(tmp_path, "SRR1001.fastq", "SRR1001_1.fastq", "SRR1001_2.fastq")
        with pytest.raises(AmbiguousLibraryError):
            probe_sample("SRR1001", str(tmp_path))

    def test_nothing_downloaded(self, tmp_path):
        with pytest.raises(AmbiguousLibraryError):
            probe_sample("SRR1001", str(tmp_path))


class TestResolveLibraryType:
    def test_explicit_type_does_not_touch_filesystem(self, make_config, tmp_path):
        config = make_config(library_type="single")
        missing = tmp_path / "does-not-exist"
        assert resolve_library_type(config, str(missing)) is LibraryType.SINGLE
        assert not missing.exists()

    def test_all_paired(self, make_config, tmp_path):
        raw = tmp_path / "raw"
        touch(raw, "SRR1001_1.fastq", "SRR1001_2.fastq", "SRR10002_1.fastq", "SRR10002_2.fastq")
        config = make_config(library_type=None)
        assert resolve_library_type(config, str(raw)) is LibraryType.PAIRED

    def test_all_single(self, make_config, tmp_path):
        raw = tmp_path / "raw"
        touch(raw, "SRR1001.fastq", "SRR10002.fastq")
        config = make_config(library_type=None)
        assert resolve_library_type(config, str(raw)) is LibraryType.SINGLE

    def test_mixed(self, make_config, tmp_path):
        raw = tmp_path / "raw"
        touch(raw, "SRR1001.fastq", "SRR10002_1.fastq", "SRR10002_2.fastq")
        config = make_config(library_type=None)
        with pytest.raises(MixedLibraryError) as e:
            resolve_library_type(config, str(raw))
        assert e.value.exit_code == EXIT_MIXED_LIBRARY

    def test_second_sample_missing_mate(self, make_config, tmp_path):
        raw = tmp_path / "raw"
        touch(raw, "SRR1001_1.fastq", "SRR1001_2.fastq", "SRR10002_1.fastq")
        config = make_config(library_type=None)
        with pytest.raises(AmbiguousLibraryError) as e:
            resolve_library_type(config, str(raw))
        assert e.value.exit_code == EXIT_AMBIGUOUS_LIBRARY
        assert "SRR10002" in str(e.value)
