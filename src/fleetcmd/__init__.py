"""fleetcmd - run one command on many managed instances and collect the results."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fleetcmd")
except PackageNotFoundError:
    # Package is not installed (e.g., running from source without pip install)
    __version__ = "0.0.0.dev0"

# Re-export core public API
from fleetcmd.collector import run_and_collect
from fleetcmd.results import Result, RunSummary

# NOTE: Update this list when adding new exports to this module.
__all__ = [
    "__version__",
    "Result",
    "RunSummary",
    "run_and_collect",
]
