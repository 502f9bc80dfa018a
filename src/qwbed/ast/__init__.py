from .includes import load_config, load_config_text, resolve_includes
from .parser import parse_file, parse_text, validate_sections
from .spec import CommandBlock, Config, Template

__all__ = [
    "CommandBlock",
    "Config",
    "Template",
    "load_config",
    "load_config_text",
    "parse_file",
    "parse_text",
    "resolve_includes",
    "validate_sections",
]
