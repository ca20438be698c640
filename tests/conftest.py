from pathlib import Path

import pytest

from run_config import build_run_config
from stage_runner import StageRunner, Timelog
from stages import StageContext
from workspace import WorkspaceManager

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class FakeExecutor:
    """Records every command instead of running it.

    ``statuses`` maps a program name to the exit status it returns; ``outputs``
    maps a program name to a callable that creates the files it would write.
    """

    def __init__(self, statuses=None, outputs=None):
        self.statuses = statuses or {}
        self.outputs = outputs or {}
        self.calls = []

    def __call__(self, command, stdout=None, cwd=None):
        self.calls.append({"command": list(command), "stdout": stdout, "cwd": cwd})
        program = command[0]
        if stdout is not None:
            Path(stdout).write_text("")
        if program in self.outputs:
            self.outputs[program](command, stdout, cwd)
        return self.statuses.get(program, 0)

    def programs(self):
        return [call["command"][0] for call in self.calls]


@pytest.fixture
def home_dir(tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    (home / "diamondToTaxonomy.py").write_text("print('translate')\n")
    return home


@pytest.fixture
def make_config(tmp_path: Path, home_dir: Path):
    def _make_config(samples="SRR1001,SRR10002", library_type="paired", **kwargs):
        options = dict(
            project_id="trichomonas",
            samples=samples,
            library_type=library_type,
            memory="30GB",
            threads=4,
            working_dir=str(tmp_path / "work"),
            final_dir=str(tmp_path / "final"),
            temp_dir=str(tmp_path / "temp"),
            home_dir=str(home_dir),
        )
        options.update(kwargs)
        return build_run_config(**options)

    return _make_config


@pytest.fixture
def make_context(make_config):
    def _make_context(config=None, executor=None, which=lambda tool: f"/usr/bin/{tool}", **kwargs):
        config = config or make_config(**kwargs)
        workspace = WorkspaceManager(config)
        layout = workspace.ensure_layout()
        workspace.install_helpers()
        runner = StageRunner(
            Timelog(layout.timelog),
            working_dir=config.working_dir,
            executor=executor or FakeExecutor(),
        )
        return StageContext(config, layout, runner, which=which)

    return _make_context
