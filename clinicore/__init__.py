"""clinicore: data-access core for clinical data entry.

Schema migrations, criteria-driven repositories and a resolution cache over
an embedded SQLite database.
"""

from .config import Config
from .depends import depends
from .logger import Logger

__all__ = ["Config", "Logger", "depends"]
