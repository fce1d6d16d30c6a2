from pathlib import Path

# Define the project root directory
ROOT_DIR = Path(__file__).parent.parent

# Define paths to other important directories
DATA_DIR = ROOT_DIR / "data"
TARGETS_DIR = DATA_DIR / "targets"
DEFAULT_CONFIG_PATH = ROOT_DIR / "config.yaml"
