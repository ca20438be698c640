"""Tests for copying run results to final storage."""
import os
import shutil

from finalizer import ResultFinalizer, sync_files
from stage_runner import Timelog
from workspace import WorkspaceManager


def prepare(make_config, **kwargs):
    config = make_config(**kwargs)
    layout = WorkspaceManager(config).ensure_layout()
    return config, layout


def write(filename, content="data\n"):
    with open(filename, "w") as f:
        f.write(content)
    return filename


def test_sync_only_adds_and_updates(tmp_path):
    source, destination = tmp_path / "source", tmp_path / "destination"
    source.mkdir()
    destination.mkdir()
    write(destination / "other_run.txt")
    write(source / "result.txt", "first\n")
    assert sync_files([str(source / "result.txt")], str(destination)) == [
        str(destination / "result.txt")
    ]
    # unchanged files are not copied again
    assert sync_files([str(source / "result.txt")], str(destination)) == []
    write(source / "result.txt", "second, longer\n")
    sync_files([str(source / "result.txt")], str(destination))
    assert (destination / "result.txt").read_text() == "second, longer\n"
    assert (destination / "other_run.txt").exists()


def test_only_this_runs_files_are_copied(make_config, tmp_path):
    config, layout = prepare(make_config, samples="SRR1")
    write(os.path.join(layout.path("analysis/contigs"), "SRR1.contigs.fasta"))
    write(os.path.join(layout.path("analysis/contigs"), "SRR12.contigs.fasta"))
    ResultFinalizer(config, layout).sync_results()
    final_contigs = tmp_path / "final" / "analysis" / "contigs"
    assert os.listdir(final_contigs) == ["SRR1.contigs.fasta"]


def test_finalize(make_config, tmp_path):
    config, layout = prepare(make_config)
    timelog = Timelog(layout.timelog)
    timelog.write("Began download at:")
    write(layout.mapped_table)
    write(layout.processing(".mapped_reads_to_contigs.no_unmapped_reads.sorted.bam"))
    write(layout.processing(".reads_1.fq"))
    write(os.path.join(layout.data_contigs_dir, "notes.txt"))
    ResultFinalizer(config, layout, timelog).finalize()

    final = tmp_path / "final"
    processing = final / "analysis" / "mapping" / "processing"
    assert os.listdir(processing) == [f"{config.run_label}.mapped_reads_to_contigs.no_unmapped_reads.sorted.bam"]
    assert (final / "analysis" / "mapping" / os.path.basename(layout.mapped_table)).is_file()
    assert (final / "data" / "contigs" / "notes.txt").is_file()
    for relative in ["data/raw-sra", "data/fastq-adapter-trimmed"]:
        readme = (final / relative / "README.txt").read_text()
        assert layout.path(relative) in readme
    final_timelog = (final / "analysis" / "timelogs" / f"{config.run_label}.log").read_text()
    assert "finished successfully" in final_timelog
    assert not os.path.exists(config.temp_dir)


def test_new_database_is_preserved(make_config, tmp_path):
    config, layout = prepare(make_config)
    database_dir = tmp_path / "temp" / "diamond_db"
    database_dir.mkdir()
    write(database_dir / "nr.dmnd")
    ResultFinalizer(config, layout).sync_results(new_database_dir=str(database_dir))
    assert (tmp_path / "final" / "scripts" / "diamond_db" / "nr.dmnd").is_file()


def test_temp_removal_failure_is_a_warning(make_config, monkeypatch, caplog):
    config, layout = prepare(make_config)

    def fail(path):
        raise OSError("busy")

    monkeypatch.setattr(shutil, "rmtree", fail)
    assert ResultFinalizer(config, layout).remove_temp() is False
    assert "Could not remove temporary directory" in caplog.text


def test_shared_temp_root_keeps_other_runs(make_config, tmp_path):
    scratch = str(tmp_path / "scratch")
    config, layout = prepare(make_config, samples="SRR1", temp_dir=scratch)
    other, _ = prepare(make_config, samples="SRR2", temp_dir=scratch)
    assembly = os.path.join(other.temp_dir, "rnaspades")
    os.makedirs(assembly)
    write(os.path.join(assembly, "transcripts.fasta"), ">NODE_1\nACGT\n")
    ResultFinalizer(config, layout).finalize()
    assert not os.path.exists(config.temp_dir)
    assert os.path.isfile(os.path.join(assembly, "transcripts.fasta"))
