"""A module containing functions for locating sfhgrid data directories.

The SSP libraries live in a directory tree of the form
``<library_dir>/ssp.<resolution>/<library files>``. By default this tree is
looked for inside the user data directory (as defined by platformdirs) but
the location can be overridden with environment variables:

    SFHGRID_DIR: the base directory for all sfhgrid data.
    SFHGRID_LIBRARY_DIR: the directory containing the SSP libraries.

NOTE: This module must not import other sfhgrid modules beyond exceptions
to avoid circular imports.
"""

import os
from pathlib import Path

from platformdirs import user_data_dir


def get_base_dir() -> Path:
    """Get the sfhgrid base directory path.

    Returns:
        Path:
            SFHGRID_DIR if set, otherwise the platformdirs user data
            directory for sfhgrid.
    """
    if "SFHGRID_DIR" in os.environ:
        return Path(os.environ["SFHGRID_DIR"])

    return Path(user_data_dir("sfhgrid"))


def get_library_dir() -> Path:
    """Get the directory containing the SSP libraries.

    Returns:
        Path:
            SFHGRID_LIBRARY_DIR if set, otherwise a "libraries"
            subdirectory of the base directory.
    """
    if "SFHGRID_LIBRARY_DIR" in os.environ:
        return Path(os.environ["SFHGRID_LIBRARY_DIR"])

    return get_base_dir() / "libraries"


def library_dir_exists() -> bool:
    """Check if the SSP library directory exists."""
    return get_library_dir().exists()
