"""The definitions for sfhgrid specific errors."""


class IncorrectUnits(Exception):
    """Generic exception class for when incorrect units are provided."""

    def __init__(self, *args):
        """Initialise the exception with an optional message.

        Args:
            *args: Optional message to include in the exception.
        """
        if args:
            self.message = args[0]
        else:
            self.message = None

    def __str__(self):
        """Return the string representation of the exception.

        Returns:
            str: The string representation of the exception.
        """
        if self.message:
            return "{0} ".format(self.message)
        return "Inconsistent units"


class MissingUnits(Exception):
    """Generic exception class for when expected units aren't provided."""

    def __init__(self, *args):
        """Initialise the exception with an optional message.

        Args:
            *args: Optional message to include in the exception.
        """
        if args:
            self.message = args[0]
        else:
            self.message = None

    def __str__(self):
        """Return the string representation of the exception.

        Returns:
            str: The string representation of the exception.
        """
        if self.message:
            return "{0} ".format(self.message)
        return "Units are missing"


class InconsistentArguments(Exception):
    """Generic exception class for inconsistent combinations of arguments."""

    def __init__(self, *args):
        """Initialise the exception with an optional message.

        Args:
            *args: Optional message to include in the exception.
        """
        if args:
            self.message = args[0]
        else:
            self.message = None

    def __str__(self):
        """Return the string representation of the exception.

        Returns:
            str: The string representation of the exception.
        """
        if self.message:
            return "{0} ".format(self.message)
        return "Inconsistent parameter choice"


class ConfigurationError(Exception):
    """Exception class for invalid or incomplete grid configurations."""

    def __init__(self, *args):
        """Initialise the exception with an optional message.

        Args:
            *args: Optional message to include in the exception.
        """
        if args:
            self.message = args[0]
        else:
            self.message = None

    def __str__(self):
        """Return the string representation of the exception.

        Returns:
            str: The string representation of the exception.
        """
        if self.message:
            return "{0} ".format(self.message)
        return "Invalid configuration"


class CompileError(Exception):
    """Exception class for SFH formulas that could not be parsed.

    Attributes:
        formula (str):
            The formula text that failed to compile.
        position (int):
            The 0-based character offset at which parsing failed.
        reason (str):
            A short description of what went wrong.
    """

    header = "could not parse SFH expression: "

    def __init__(self, formula, position, reason=None):
        """Initialise the exception.

        Args:
            formula (str):
                The formula text that failed to compile.
            position (int):
                The 0-based character offset at which parsing failed.
            reason (str):
                A short description of what went wrong.
        """
        self.formula = formula
        self.position = max(0, min(position, len(formula)))
        self.reason = reason

    @property
    def caret(self):
        """Return the formula with a marker under the offending character.

        Returns:
            str:
                Two lines, the header followed by the formula and a caret
                aligned under the failing offset.
        """
        return (
            f"{self.header}{self.formula}\n"
            + " " * (len(self.header) + self.position)
            + "^"
        )

    def __str__(self):
        """Return the string representation of the exception.

        Returns:
            str: The string representation of the exception.
        """
        out = self.caret
        if self.reason:
            out += f"\n{self.reason}"
        return out


class LibraryReadError(Exception):
    """Exception class for SSP libraries that could not be read.

    Attributes:
        filename (str):
            The library file that failed to load.
        stage (str):
            The logical reading stage that failed (if known).
        message (str):
            The error message.
    """

    def __init__(self, message=None, filename=None, stage=None):
        """Initialise the exception.

        Args:
            message (str):
                The error message.
            filename (str):
                The library file that failed to load.
            stage (str):
                The logical reading stage that failed (if known).
        """
        self.message = message
        self.filename = filename
        self.stage = stage

    def __str__(self):
        """Return the string representation of the exception.

        Returns:
            str: The string representation of the exception.
        """
        if self.message:
            return "{0} ".format(self.message)
        return "Could not read SSP library"
