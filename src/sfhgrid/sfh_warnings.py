"""A module containing the warning utilities used across sfhgrid.

Warnings are issued through the standard library warnings machinery but
are wrapped to the terminal width and attributed to the first frame of user
code, so a warning raised deep inside the grid builder points at the line
that started the build.

Example usage::

    warn("Could not write the SSP cache file, it will be rebuilt next time.")

"""

import inspect
import os
import textwrap
import warnings
from pathlib import Path


def _is_user_code(filename):
    """Determine if a filename represents user code vs library code.

    Args:
        filename (str): The filename to check.

    Returns:
        bool: True if this appears to be user code.
    """
    filename = str(filename).replace("\\", "/")

    # Patterns that indicate library/internal code
    library_patterns = (
        "sfhgrid/",
        "site-packages/",
        "/lib/python",
        "/lib64/python",
        "<frozen",
        "<built-in>",
        "importlib/",
    )
    for pattern in library_patterns:
        if pattern in filename:
            return False

    for part in Path(filename).parts:
        if part in ("site-packages", "__pycache__", ".tox", "venv", "env"):
            return False

    return True


def _find_user_stacklevel():
    """Find the stack level of the first frame belonging to user code.

    Returns:
        int: The stack level to use for warnings.warn().
    """
    frame = inspect.currentframe()
    try:
        # Skip this function and warn()
        level = 2
        frame = frame.f_back.f_back

        while frame is not None:
            if _is_user_code(frame.f_code.co_filename):
                return level
            level += 1
            frame = frame.f_back

        return 2

    finally:
        # Frame references create reference cycles
        del frame


def _wrap(message, category):
    """Wrap a warning message to fit the terminal.

    Args:
        message (str): The message to wrap.
        category (Warning): The warning category (its name prefixes the
            first line of the printed warning).

    Returns:
        str: The wrapped message.
    """
    try:
        width = os.get_terminal_size().columns
    except (AttributeError, OSError):
        width = 80

    # Leave room for the "file:line: Category: " prefix
    available_width = max(40, width - len(category.__name__) - 40)

    return textwrap.fill(
        str(message),
        width=available_width,
        break_long_words=False,
        break_on_hyphens=False,
    )


def warn(message, category=RuntimeWarning, stacklevel=None):
    """Issue a warning to the end user with proper text wrapping.

    Args:
        message (str):
            The message to be displayed to the end user.
        category (Warning):
            The warning category to use. `RuntimeWarning` by default.
        stacklevel (int, optional):
            The number of stack levels to skip when displaying the warning.
            If None (default), the first frame of user code is used.
    """
    if stacklevel is None:
        stacklevel = _find_user_stacklevel()

    warnings.warn(
        _wrap(message, category),
        category=category,
        stacklevel=stacklevel,
    )
