from archive_pmn.config import CoreConfig, load_core_config
from archive_pmn.home import ArchivePaths, ensure_archive_layout, resolve_archive_home

__version__ = "0.1.0"

__all__ = [
    "ArchivePaths",
    "CoreConfig",
    "__version__",
    "ensure_archive_layout",
    "load_core_config",
    "resolve_archive_home",
]
