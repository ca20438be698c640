import argparse
import logging
import os
import sys
from typing import Dict, List, Mapping, Optional

import yaml

from constants import DEFAULT_LOG_FILE, EXIT_CONFIG, EXIT_SUCCESS, PIPELINE_STEPS
from errors import ConfigError, EnvironmentActivationError, PipelineError
from pipeline import PipelineDriver
from run_config import RunConfig, build_run_config
from stage_runner import StageRecord, StageRunner, Timelog
from stages import StageContext
from workspace import WorkspaceManager

# create a logger object writing to the given file
logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

# keys accepted in a configuration file, matching the command line options
CONFIG_KEYS = [
    "project",
    "samples",
    "library_type",
    "memory",
    "threads",
    "working_dir",
    "final_dir",
    "temp_dir",
    "home_dir",
    "diamond_db",
    "start_step",
    "conda_env",
    "download_database",
]

EXAMPLE = (
    "Example of a complex run: dnatax -p trichomonas -s SRR1001,SRR10002 -l paired -m 30 "
    "-w external_drive/storage/ -f projects/dnatax/final/ -t /tmp/ -d tools/diamond/nr"
)


class UsageParser(argparse.ArgumentParser):
    # usage mistakes are configuration errors, not argparse's default exit status 2
    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(EXIT_CONFIG, f"{self.prog}: error: {message}\n")


def setup_logger(filename: str) -> None:
    # set up logger to write to a given file and to the error stream
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] %(levelname)s: %(message)s",
        handlers=[logging.FileHandler(filename), logging.StreamHandler()],
    )
    logger.info("Initialized logging for DNAtax")


def load_configs(filename: Optional[str]) -> Dict:
    # read in the configuration file, if one was given
    if filename is None:
        return {}
    if not os.path.isfile(filename):
        raise ConfigError(f"Configuration file {filename} does not exist")
    logger.info(f"Loading configuration from {filename}")
    with open(filename, "r") as f:
        configs = yaml.safe_load(f) or {}
    if not isinstance(configs, dict):
        raise ConfigError(f"Configuration file {filename} must hold a mapping of options")
    unknown = sorted(set(configs) - set(CONFIG_KEYS))
    if unknown:
        raise ConfigError(f"Unknown configuration keys in {filename}: {', '.join(unknown)}")
    return configs


def configure_config(configs: Dict, args: argparse.Namespace) -> Dict:
    # command line options override values from the configuration file
    merged = dict(configs)
    for key in CONFIG_KEYS:
        value = getattr(args, key, None)
        if value is not None:
            merged[key] = value
    return merged


def check_environment(conda_env: Optional[str], environ: Mapping[str, str] = os.environ) -> None:
    # the external tools are expected to come from the named conda environment
    if conda_env is None:
        return
    active = environ.get("CONDA_DEFAULT_ENV")
    if active != conda_env:
        raise EnvironmentActivationError(
            f"Could not find the conda environment {conda_env} active (found {active or 'none'}). "
            f"Please run 'conda activate {conda_env}' and try again."
        )


def build_parser() -> UsageParser:
    # -h is the home directory, so help is only available as --help
    parser = UsageParser(
        prog="dnatax",
        description="Discover virus sequences in SRA transcriptomes",
        epilog=EXAMPLE,
        add_help=False,
    )
    parser.add_argument("--help", action="help", help="Show this help message and exit")
    parser.add_argument("-p", "--project", type=str, help="Project name")
    parser.add_argument(
        "-s", "--samples", type=str, help="One or more SRA run accessions separated by commas"
    )
    parser.add_argument(
        "-l",
        "--library_type",
        type=str,
        choices=["paired", "single"],
        help="Library type of the reads [default=auto determine]",
    )
    parser.add_argument(
        "-m", "--memory", type=str, help="Maximum amount of memory to use in GB [default=16]"
    )
    parser.add_argument(
        "-n", "--threads", type=str, help="Maximum number of CPUs to use [default=auto determine]"
    )
    parser.add_argument("-w", "--working_dir", type=str, help="Directory where all analysis takes place")
    parser.add_argument("-f", "--final_dir", type=str, help="Directory the results are copied to at the end")
    parser.add_argument("-t", "--temp_dir", type=str, help="Directory for temporary files")
    parser.add_argument("-h", "--home_dir", type=str, help="Directory holding the DNAtax helper scripts")
    parser.add_argument(
        "-d", "--diamond_db", type=str, help="Full path to the DIAMOND database, e.g. /path/to/nr"
    )
    parser.add_argument("-c", "--configuration_file", type=str, help="Path to a YAML configuration file")
    parser.add_argument(
        "--start-step",
        dest="start_step",
        type=str,
        choices=PIPELINE_STEPS,
        help="Step to (re)start the pipeline from",
    )
    parser.add_argument("-e", "--conda_env", type=str, help="Conda environment that must be active")
    parser.add_argument(
        "--no-database-download",
        dest="download_database",
        action="store_const",
        const=False,
        help="Fail instead of downloading and building a DIAMOND database",
    )
    parser.add_argument("--log-file", dest="log_file", type=str, help="Path to the log file")
    return parser


def run_pipeline(config: RunConfig, start_step: Optional[str] = None) -> List[StageRecord]:
    # lay out the workspace and install helpers before any stage runs
    workspace = WorkspaceManager(config)
    layout = workspace.ensure_layout()
    workspace.install_helpers()
    runner = StageRunner(Timelog(layout.timelog), working_dir=config.working_dir)
    context = StageContext(config, layout, runner)
    driver = PipelineDriver(context, start_step=start_step)
    return driver.run()


def main(argv: Optional[List[str]] = None) -> int:
    # read in command line arguments
    parser = build_parser()
    args = parser.parse_args(argv)

    # configure logger and pipeline
    setup_logger(filename=args.log_file or DEFAULT_LOG_FILE)
    try:
        configs = configure_config(load_configs(args.configuration_file), args)
        config = build_run_config(
            project_id=configs.get("project"),
            samples=configs.get("samples"),
            library_type=configs.get("library_type"),
            memory=configs.get("memory"),
            threads=configs.get("threads"),
            working_dir=configs.get("working_dir"),
            final_dir=configs.get("final_dir"),
            temp_dir=configs.get("temp_dir"),
            home_dir=configs.get("home_dir"),
            diamond_db=configs.get("diamond_db"),
            download_database=configs.get("download_database", True),
            conda_env=configs.get("conda_env"),
        )
        check_environment(config.conda_env)
        run_pipeline(config, start_step=configs.get("start_step"))
    except ConfigError as e:
        logger.error(f"{e}")
        parser.print_usage(sys.stderr)
        print(EXAMPLE, file=sys.stderr)
        return e.exit_code
    except PipelineError as e:
        if e.stage is not None:
            logger.error(f"Error in pipeline step {e.stage}: {e}")
            logger.error(
                "Completed steps remain on disk; fix the problem and re-run with "
                f"--start-step {e.stage}"
            )
        else:
            logger.error(f"{e}")
        return e.exit_code
    logger.info(f"Final files are located at {config.final_dir}")
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
