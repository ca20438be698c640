import os
import subprocess
import sys

import yaml
from flask import Flask, jsonify, render_template, request

# the pipeline modules live one directory up
REPOSITORY = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, REPOSITORY)

from constants import DEFAULT_LOG_FILE, DEFAULT_WORKING_DIR  # noqa: E402
from errors import ConfigError  # noqa: E402
from run_config import derive_run_label, parse_accessions  # noqa: E402
from workspace import WorkspaceLayout  # noqa: E402

# define the path for the application log written by the main script
DIRECTORY = os.path.abspath(".")
LOG_FILE = os.path.join(DIRECTORY, DEFAULT_LOG_FILE)
MAIN_SCRIPT = os.path.join(REPOSITORY, "main.py")

# initialize the flask application
app = Flask(__name__, static_folder="static")


def reset_log() -> None:
    # clear the previous application log
    if os.path.exists(LOG_FILE):
        os.remove(LOG_FILE)
    open(LOG_FILE, "w").close()


def read_text(filename: str) -> str:
    if not os.path.exists(filename):
        return ""
    with open(filename, "r") as f:
        return f.read()


def timelog_path(working_dir: str, samples: str) -> str:
    # the timelog is named after the run label derived from the accessions
    run_label = derive_run_label(parse_accessions(samples))
    return WorkspaceLayout(root=os.path.abspath(working_dir), run_label=run_label).timelog


# main route for hosting the html
@app.route("/")
def index():
    """
    Renders the main HTML page.
    This function is called when a user navigates to the root URL.
    """
    return render_template("index.html")


# handles parameter submission and launches the pipeline
@app.route("/run", methods=["POST"])
def run_script():
    data = request.get_json(silent=True) or {}
    configs = {}
    # read in the YAML file to get the base parameters, if one was given
    config_file = data.get("config_file")
    if config_file:
        if not os.path.exists(config_file):
            return jsonify({"status": "error", "message": f"Configuration file {config_file} does not exist."}), 404
        with open(config_file, "r") as f:
            configs = yaml.safe_load(f) or {}
    # update the configuration with the submitted parameters
    for key, value in data.items():
        if key == "config_file" or value in (None, ""):
            continue
        configs[key] = value
    if not configs.get("project") or not configs.get("samples"):
        return jsonify({"status": "error", "message": "A project name and sample accessions are required."}), 400
    try:
        parse_accessions(configs["samples"])
    except ConfigError as e:
        return jsonify({"status": "error", "message": str(e)}), 400
    # write the updated configuration next to the log
    config_file_updated = os.path.join(DIRECTORY, f"{configs['project']}_dnatax.yaml")
    with open(config_file_updated, "w") as f:
        yaml.safe_dump(configs, f, default_flow_style=False)
    # execute the main script with the updated configuration file
    subprocess.Popen(
        [sys.executable, MAIN_SCRIPT, "-c", config_file_updated, "--log-file", LOG_FILE]
    )
    return jsonify(
        {
            "status": "success",
            "message": f"Process started. Check {LOG_FILE} for logs.",
        }
    )


# route to retrieve the progress of a run
@app.route("/status")
def status():
    log_content = read_text(LOG_FILE)
    timelog_content = ""
    samples = request.args.get("samples")
    if samples:
        working_dir = request.args.get("working_dir", DEFAULT_WORKING_DIR)
        try:
            timelog_content = read_text(timelog_path(working_dir, samples))
        except ConfigError as e:
            return jsonify({"status": "error", "message": str(e)}), 400
    return jsonify({"log_content": log_content, "timelog_content": timelog_content})


# main execution block to run the Flask app
if __name__ == "__main__":
    reset_log()
    # retrieve host to run on remote server otherwise use local host
    try:
        host = subprocess.check_output(["hostname", "-i"]).decode().split()[0]
    except (OSError, subprocess.CalledProcessError, IndexError):
        host = "127.0.0.1"
    ports = [7256, 5000, 5001, 5002, 5003, 5004, 5005]
    for port in ports:
        try:
            app.run(host=host, port=port, debug=True)
            break  # exit the loop if the app runs successfully
        except OSError as e:
            print(f"Port {port} is in use, trying next port... Error: {e}")
