"""A module defining the resolved configuration of a model grid.

The grid builder does not parse any raw configuration itself. It consumes a
GridConfig, which can be created directly in Python or loaded from a YAML
file (or a dictionary with the same content).

Example YAML file:

    custom_sfh: "step(t - tdelay) * exp(-(t - tdelay) / tau)"
    custom_params:
      tau: {min: 8.0e8, max: 1.2e9, step: 2.0e8}
      tdelay: [0.0, 1.0e8]
    custom_sfh_step: 1.0e6   # yr
    sfr_avg: 0.0             # yr, 0 for the instantaneous SFR
    metallicities: [0.004, 0.02]
    log10ages: {min: 8.0, max: 10.0, step: 0.2}
    library: bc03
    resolution: pr
    imf: ch
    cosmology: {H0: 70.0, Om0: 0.3}

Example usage:

    from sfhgrid.config import GridConfig

    config = GridConfig.from_yaml("grid.yml")
    print(config.grid_dims, config.nmodel)
"""

import numpy as np
import yaml
from unyt import yr

from sfhgrid import exceptions
from sfhgrid.cosmology import get_default_cosmology
from sfhgrid.data.initialise import get_library_dir
from sfhgrid.sfh_warnings import warn
from sfhgrid.ssp import ssp_library_filename
from sfhgrid.units import Quantity, accepts

# The default metallicity of each library (when none is given)
DEFAULT_METALLICITIES = {"co11": 0.019}
DEFAULT_METALLICITY = 0.02

# The default age axis, in log10(yr)
DEFAULT_LOG10AGES = {"min": 8.0, "max": 10.0, "step": 0.2}

# The names of the fixed grid axes, in traversal order
METALLICITY_AXIS = "metallicity"
AGE_AXIS = "log10age"

# Keys understood by GridConfig.from_dict
CONFIG_KEYS = (
    "custom_sfh",
    "custom_params",
    "custom_sfh_step",
    "sfr_avg",
    "metallicities",
    "log10ages",
    "library_dir",
    "library",
    "resolution",
    "imf",
    "cosmology",
    "verbose",
)


def make_axis(name, values):
    """Return the values of a grid axis.

    Args:
        name (str):
            The name of the axis (only used for error messages).
        values (list/np.ndarray/dict):
            Either the explicit axis values, or a dictionary with the keys
            "min", "max" and "step" defining a regular axis. The upper
            bound is included when it falls on the axis (within rounding).

    Returns:
        np.ndarray of float
            The axis values.

    Raises:
        ConfigurationError
            If the axis is empty or its definition is invalid.
    """
    if isinstance(values, dict):
        missing = {"min", "max", "step"} - set(values)
        if missing:
            raise exceptions.ConfigurationError(
                f"The range of '{name}' is missing {sorted(missing)}."
            )
        vmin = float(values["min"])
        vmax = float(values["max"])
        step = float(values["step"])
        if step <= 0:
            raise exceptions.ConfigurationError(
                f"The step of '{name}' must be positive (got {step})."
            )
        if vmax < vmin:
            raise exceptions.ConfigurationError(
                f"The range of '{name}' is empty ({vmin} > {vmax})."
            )
        n = int(np.floor((vmax - vmin) / step + 1e-6)) + 1
        axis = vmin + step * np.arange(n)

    else:
        axis = np.atleast_1d(np.asarray(values, dtype=np.float64))
        if axis.ndim != 1:
            raise exceptions.ConfigurationError(
                f"The values of '{name}' must be a flat list."
            )

    if axis.size == 0:
        raise exceptions.ConfigurationError(f"The axis '{name}' is empty.")

    return axis


class GridConfig:
    """The resolved configuration of a custom SFH model grid.

    Attributes:
        custom_sfh (str):
            The SFH formula, a function of t (the time since the onset of
            star formation, in yr) and of the custom parameters.
        custom_params (dict):
            The values of each custom parameter axis, in axis order.
        custom_sfh_step (Quantity):
            The step of the time grid on which the SFH is sampled.
        sfr_avg (Quantity):
            The window over which the SFR is averaged (0 for the
            instantaneous SFR).
        metallicities (np.ndarray of float):
            The metallicity axis.
        log10ages (np.ndarray of float):
            The age axis, in log10(yr).
        library_dir (str):
            The directory containing the SSP libraries.
        library (str):
            The SSP library name.
        resolution (str):
            The SSP library resolution code.
        imf (str):
            The IMF code.
        cosmology (astropy.cosmology.FLRW):
            The cosmology used to get the age of the universe.
        verbose (int):
            How verbose the builder should be (0 is silent).
    """

    # Define Quantities
    custom_sfh_step = Quantity("time")
    sfr_avg = Quantity("time")

    @accepts(custom_sfh_step=yr, sfr_avg=yr)
    def __init__(
        self,
        custom_sfh,
        custom_params=None,
        custom_sfh_step=1e6 * yr,
        sfr_avg=0 * yr,
        metallicities=None,
        log10ages=None,
        library_dir=None,
        library="bc03",
        resolution="pr",
        imf="ch",
        cosmology=None,
        verbose=1,
    ):
        """Initialise the configuration.

        Args:
            custom_sfh (str):
                The SFH formula.
            custom_params (dict):
                The custom parameter axes, keyed by parameter name. Each
                axis is a list of values or a {min, max, step} dictionary.
            custom_sfh_step (unyt_quantity):
                The step of the SFH time grid.
            sfr_avg (unyt_quantity):
                The SFR averaging window (0 for the instantaneous SFR).
            metallicities (list of float):
                The metallicity axis. Defaults to the solar metallicity of
                the library.
            log10ages (list/dict):
                The age axis in log10(yr).
            library_dir (str):
                The directory containing the SSP libraries. Defaults to
                the sfhgrid library directory.
            library (str):
                The SSP library name.
            resolution (str):
                The SSP library resolution code.
            imf (str):
                The IMF code.
            cosmology (astropy.cosmology.FLRW):
                The cosmology. Defaults to a flat Lambda-CDM cosmology.
            verbose (int):
                How verbose the builder should be.
        """
        if not custom_sfh or not str(custom_sfh).strip():
            raise exceptions.ConfigurationError(
                "A custom SFH formula (custom_sfh) must be provided."
            )
        self.custom_sfh = str(custom_sfh)

        custom_params = custom_params if custom_params is not None else {}
        self.custom_params = {
            str(name): make_axis(name, values)
            for name, values in custom_params.items()
        }

        self.custom_sfh_step = custom_sfh_step
        self.sfr_avg = sfr_avg
        if self._custom_sfh_step <= 0:
            raise exceptions.ConfigurationError(
                f"custom_sfh_step must be positive (got {custom_sfh_step})."
            )
        if self._sfr_avg < 0:
            raise exceptions.ConfigurationError(
                f"sfr_avg must be positive or zero (got {sfr_avg})."
            )

        if metallicities is None:
            metallicities = [
                DEFAULT_METALLICITIES.get(library, DEFAULT_METALLICITY)
            ]
        self.metallicities = make_axis("metallicities", metallicities)

        if log10ages is None:
            log10ages = DEFAULT_LOG10AGES
        self.log10ages = make_axis("log10ages", log10ages)

        self.library_dir = str(
            library_dir if library_dir is not None else get_library_dir()
        )
        self.library = library
        self.resolution = resolution
        self.imf = imf

        self.cosmology = (
            cosmology if cosmology is not None else get_default_cosmology()
        )

        self.verbose = int(verbose)

    @classmethod
    def from_dict(cls, params):
        """Create a configuration from a dictionary.

        Times are given as plain numbers in yr. Unknown keys are ignored
        with a warning.

        Args:
            params (dict):
                The configuration values.

        Returns:
            GridConfig
                The configuration.
        """
        params = dict(params)

        for key in list(params):
            if key not in CONFIG_KEYS:
                warn(f"Ignoring unknown grid configuration key '{key}'.")
                del params[key]

        if "custom_sfh" not in params:
            raise exceptions.ConfigurationError(
                "A custom SFH formula (custom_sfh) must be provided."
            )

        for key in ("custom_sfh_step", "sfr_avg"):
            if key in params and params[key] is not None:
                params[key] = float(params[key]) * yr
            else:
                params.pop(key, None)

        cosmo = params.get("cosmology")
        if isinstance(cosmo, dict):
            params["cosmology"] = get_default_cosmology(**cosmo)

        return cls(**params)

    @classmethod
    def from_yaml(cls, path):
        """Create a configuration from a YAML file.

        Args:
            path (str):
                The path to the YAML file.

        Returns:
            GridConfig
                The configuration.
        """
        with open(path, "r") as f:
            params = yaml.safe_load(f)

        if not isinstance(params, dict):
            raise exceptions.ConfigurationError(
                f"The grid configuration file '{path}' must contain a "
                "mapping of options."
            )

        return cls.from_dict(params)

    @property
    def custom_param_names(self):
        """Return the names of the custom parameters, in axis order."""
        return list(self.custom_params.keys())

    @property
    def axes(self):
        """Return the grid axes in traversal order.

        Returns:
            dict
                The values of each axis: metallicity, log10age and then the
                custom parameters.
        """
        axes = {
            METALLICITY_AXIS: self.metallicities,
            AGE_AXIS: self.log10ages,
        }
        axes.update(self.custom_params)
        return axes

    @property
    def grid_dims(self):
        """Return the size of each grid axis."""
        return [axis.size for axis in self.axes.values()]

    @property
    def nmodel(self):
        """Return the number of grid nodes."""
        return int(np.prod(self.grid_dims))

    def ssp_filename(self, im):
        """Return the SSP library file of a metallicity.

        Args:
            im (int):
                The index along the metallicity axis.

        Returns:
            str
                The library path, without extension.
        """
        return ssp_library_filename(
            self.library_dir,
            self.library,
            self.resolution,
            self.imf,
            self.metallicities[im],
        )

    def __repr__(self):
        """Return a string representation of the configuration."""
        return (
            f"GridConfig(custom_sfh={self.custom_sfh!r}, "
            f"custom_params={self.custom_param_names}, "
            f"grid_dims={self.grid_dims})"
        )
