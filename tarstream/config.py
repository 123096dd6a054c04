import logging
import os
from typing import Dict
from tarstream.untar import MAX_CONTINUATIONS

LOG = logging.getLogger(__name__)

# The configuration file is $TARSTREAM_CONFIG, or tarstream.conf in
# $XDG_CONFIG_HOME (~/.config if that is not set).
CONFIGPATH = os.getenv("TARSTREAM_CONFIG", os.path.join(os.getenv("XDG_CONFIG_HOME", os.path.expanduser("~/.config")), "tarstream.conf"))

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

class ConfigError(Exception):
    """Invalid configuration file passed"""

class Config:
    encoding: str
    max_continuations: int
    log_level: str

    def __init__(self, *, encoding: str = "utf-8", max_continuations: int = MAX_CONTINUATIONS,
                 log_level: str = "WARNING"):
        self.encoding = encoding
        self.max_continuations = max_continuations
        self.log_level = log_level

    def __repr__(self) -> str:
        return f"<Config encoding={self.encoding} max_continuations={self.max_continuations} log_level={self.log_level}>"

    @property
    def reader_options(self) -> Dict:
        """Keyword arguments for TarReader."""
        return {"encoding": self.encoding, "max_continuations": self.max_continuations}

def parse_config(file: str) -> Dict[str, Dict[str, str]]:
    """Read the text file into a dictionary of sections."""

    ret = {}

    with open(file) as fp:
        section = None
        for line in fp:
            line = line.strip()
            if len(line) == 0 or line[0] == '#' or line[0] == ';':
                # It is an empty line or a comment
                pass
            elif line[0] == '[' and line[-1] == ']':
                section = line[1:-1].strip()
                ret.setdefault(section, {})
            elif '=' in line:
                if section is None:
                    raise ConfigError(f"Setting outside of a section: '{line}'")
                key, value = (s.strip() for s in line.split('=', 1))
                ret[section][key] = value
            else:
                raise ConfigError(f"Could not parse the line '{line}'")
    return ret

def load_config(file: str) -> Config:
    """Load the decoder configuration from the text file."""

    config = Config()

    for section, values in parse_config(file).items():
        for key, value in values.items():
            match (section, key):
                case ("decoder", "encoding"):
                    try:
                        "".encode(value)
                    except LookupError:
                        raise ConfigError(f"Unknown encoding '{value}'") from None
                    config.encoding = value
                case ("decoder", "max_continuations"):
                    if not value.isdigit():
                        raise ConfigError(f"max_continuations must be a non-negative integer, not '{value}'")
                    config.max_continuations = int(value)
                case ("log", "level"):
                    if value.upper() not in LEVELS:
                        raise ConfigError(f"Unknown log level '{value}'")
                    config.log_level = value.upper()
                case _:
                    raise ConfigError(f"Unknown configuration key [{section}] {key}")

    return config

def default_config() -> Config:
    """Load CONFIGPATH if it exists, the defaults otherwise."""

    if os.path.exists(CONFIGPATH):
        LOG.debug("Loading configuration from %s", CONFIGPATH)
        return load_config(CONFIGPATH)
    return Config()
