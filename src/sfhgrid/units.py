"""A module for dynamically returning attributes with and without units.

The unit system is defined by the categories in default_units.yml. The
Quantity descriptor attaches one of these units to a class attribute, and
the accepts decorator checks (and converts) the units of arguments passed
to a function.

Example defintion:

    class Foo:

        ages = Quantity("time")

        def __init__(self, ages):
            self.ages = ages

Example usage:

    foo = Foo(ages)

    ages_with_units = foo.ages
    ages_no_units = foo._ages

"""

import os
from functools import wraps

import yaml
from unyt import Unit, dimensionless, unyt_array, unyt_quantity
from unyt.exceptions import UnitConversionError

from sfhgrid import exceptions

# Define the path to the unit definitions
FILE_PATH = os.path.join(os.path.dirname(__file__), "default_units.yml")


def _load_and_convert_unit_categories() -> dict:
    """Load the default unit system from the YAML file.

    Returns:
        dict
            A dictionary of unyt Unit objects keyed by category.
    """
    data: dict
    with open(FILE_PATH, "r") as f:
        data = yaml.safe_load(f)

    unit_categories: dict = data["UnitCategories"]

    return {
        key: Unit(value["unit"]) for key, value in unit_categories.items()
    }


# NOTE: This module-level variable will be initialized only once on import
UNIT_CATEGORIES = _load_and_convert_unit_categories()


class Quantity:
    """A decriptor class controlling dynamicly associated attribute units.

    Attributes:
        unit (unyt.unit_object.Unit)
            The unit for this Quantity from the unit system.
        public_name (str):
            The name of the class variable containing Quantity. Used when
            values with a unit are wanted.
        private_name (str):
            The name of the class variable with a leading underscore. Used
            mostly internally for values without a unit.
    """

    def __init__(self, category):
        """Initialise the Quantity.

        Args:
            category (str):
                The category of the attribute. This is used to get the unit
                from the unit system.
        """
        if category not in UNIT_CATEGORIES:
            raise exceptions.InconsistentArguments(
                f"Unknown unit category '{category}'. "
                f"Options are {list(UNIT_CATEGORIES.keys())}"
            )
        self.unit = UNIT_CATEGORIES[category]

    def __set_name__(self, owner, name):
        """Store the name of the class variable when it is assigned."""
        self.public_name = name
        self.private_name = "_" + name

    def __get__(self, obj, type=None):
        """Return the value of the attribute with units.

        Returns:
            unyt_array/unyt_quantity/None
                The value with units attached or None if value is None.
        """
        value = getattr(obj, self.private_name)

        if value is None:
            return None

        return value * self.unit

    def __set__(self, obj, value):
        """Set the value of the attribute, converting to the expected unit.

        Args:
            obj (Any):
                The object containing the Quantity attribute.
            value (array-like/float/int):
                The value to store in the attribute.
        """
        if isinstance(value, (unyt_quantity, unyt_array)):
            if value.units != self.unit and value.units != dimensionless:
                value = value.to_value(self.unit)
            else:
                value = value.ndview

        setattr(obj, self.private_name, value)


def has_units(x):
    """Check whether the passed variable has units.

    Args:
        x (generic variable):
            The variables to check.

    Returns:
        bool
            True if the variable has units, False otherwise.
    """
    return isinstance(x, (unyt_array, unyt_quantity))


def _raise_or_convert(expected_unit, name, value):
    """Ensure we have been passed compatible units and convert if needed.

    Args:
        expected_unit (unyt.Unit):
            The expected unit for the value.
        name (str):
            The name of the variable being checked (only used for error
            messages).
        value (Any):
            The value to check.

    Returns:
        Any:
            The value in the expected unit.
    """
    if not has_units(value):
        raise exceptions.MissingUnits(
            f"{name} is missing units! Expected to "
            f"be in {expected_unit} (or equivalent)."
        )

    if value.units != expected_unit:
        try:
            value = value.to(expected_unit)
        except UnitConversionError:
            raise exceptions.IncorrectUnits(
                f"{name} passed with incompatible units. "
                f"Expected {expected_unit} (or equivalent) but "
                f"got {value.units}."
            )
    return value


def accepts(**units):
    """Check arguments passed to the wrapped function have compatible units.

    Any argument named in this decorator's kwargs must carry units
    compatible with the given unit, and is converted to it before the
    wrapped function is called. None is passed through untouched.

    Args:
        **units (dict):
            Mapping of argument name to the expected unyt unit.

    Returns:
        function
            The wrapped function.
    """

    def check_accepts(func):
        arg_names = func.__code__.co_varnames

        @wraps(func)
        def wrapped(*args, **kwargs):
            args = list(args)

            for i, (name, value) in enumerate(zip(arg_names, args)):
                if name in units and value is not None:
                    args[i] = _raise_or_convert(units[name], name, value)

            for name, value in kwargs.items():
                if name in units and value is not None:
                    kwargs[name] = _raise_or_convert(units[name], name, value)

            return func(*args, **kwargs)

        return wrapped

    return check_accepts
