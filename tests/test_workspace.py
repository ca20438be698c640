"""Tests for the per-run workspace layout and helper installation."""
import os

import pytest

from constants import EXIT_CONFIG, EXIT_MISSING_HELPER, RUN_DIRECTORIES
from errors import MissingDependencyError, UnresolvedLayoutError, WorkspaceError
from run_config import LibraryType
from workspace import WorkspaceLayout, WorkspaceManager, raw_read_files, trimmed_read_files


class TestWorkspaceLayout:
    def test_paths_are_namespaced_by_label(self):
        layout = WorkspaceLayout(root="/work", run_label="SRR1001-SRR10002")
        assert layout.timelog == "/work/analysis/timelogs/SRR1001-SRR10002.log"
        assert layout.descriptor == "/work/scripts/SRR1001-SRR10002.input.yaml"
        assert layout.contigs == "/work/analysis/contigs/SRR1001-SRR10002.contigs.fasta"
        assert layout.viral_fasta.endswith("SRR1001-SRR10002.viruses.fasta")

    def test_read_files(self):
        assert raw_read_files(LibraryType.PAIRED, "SRR1", "/raw") == [
            "/raw/SRR1_1.fastq",
            "/raw/SRR1_2.fastq",
        ]
        assert raw_read_files(LibraryType.SINGLE, "SRR1", "/raw") == ["/raw/SRR1.fastq"]
        assert trimmed_read_files(LibraryType.PAIRED, "SRR1", "/trim") == [
            "/trim/SRR1_1_val_1.fq",
            "/trim/SRR1_2_val_2.fq",
        ]
        assert trimmed_read_files(LibraryType.SINGLE, "SRR1", "/trim") == ["/trim/SRR1_trimmed.fq"]

    def test_unknown_layout(self):
        with pytest.raises(UnresolvedLayoutError):
            raw_read_files(LibraryType.UNKNOWN, "SRR1", "/raw")


class TestWorkspaceManager:
    def test_ensure_layout_creates_directories(self, make_config):
        config = make_config()
        layout = WorkspaceManager(config).ensure_layout()
        for relative in RUN_DIRECTORIES:
            assert os.path.isdir(layout.path(relative))
        assert os.path.isdir(config.temp_dir)
        assert os.path.isdir(config.final_dir)

    def test_ensure_layout_is_idempotent(self, make_config):
        config = make_config()
        manager = WorkspaceManager(config)
        layout = manager.ensure_layout()
        marker = os.path.join(layout.raw_reads_dir, "SRR1001_1.fastq")
        with open(marker, "w") as f:
            f.write("@read\n")
        manager.ensure_layout()
        assert os.path.isfile(marker)

    def test_file_in_the_way(self, make_config, tmp_path):
        config = make_config()
        (tmp_path / "work").write_text("not a directory")
        with pytest.raises(WorkspaceError) as e:
            WorkspaceManager(config).ensure_layout()
        assert e.value.exit_code == EXIT_CONFIG

    def test_install_helpers(self, make_config):
        config = make_config()
        manager = WorkspaceManager(config)
        manager.ensure_layout()
        installed = manager.install_helpers()
        assert [os.path.basename(path) for path in installed] == ["diamondToTaxonomy.py"]
        # a second install leaves the identical copy in place
        assert manager.install_helpers() == installed

    def test_missing_helper(self, make_config, home_dir):
        (home_dir / "diamondToTaxonomy.py").unlink()
        manager = WorkspaceManager(make_config())
        manager.ensure_layout()
        with pytest.raises(MissingDependencyError) as e:
            manager.install_helpers()
        assert e.value.exit_code == EXIT_MISSING_HELPER
        assert "diamondToTaxonomy.py" in str(e.value)
        assert not os.listdir(manager.layout.scripts_dir)
