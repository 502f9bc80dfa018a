"""qwbed - declarative test bed runner"""

from qwbed._version import __version__

# Re-export from ast
from qwbed.ast import Config, load_config, load_config_text, parse_text

from qwbed.config import Settings, load_settings
from qwbed.exceptions import BedError, BedSyntaxError, WaitTimeout
from qwbed.models import ProcessRecord, ProcessState, RunReport

# Re-export from runtime
from qwbed.runtime.runner import BedRunner

__all__ = [
    "__version__",
    # ast
    "Config",
    "load_config",
    "load_config_text",
    "parse_text",
    # runtime
    "BedRunner",
    "Settings",
    "load_settings",
    # errors
    "BedError",
    "BedSyntaxError",
    "WaitTimeout",
    # models
    "ProcessRecord",
    "ProcessState",
    "RunReport",
]
