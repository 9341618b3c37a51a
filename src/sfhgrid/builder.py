"""A module for building grids of models from a custom SFH.

The ModelGridBuilder drives the construction of the model grid. For every
metallicity it loads the SSP library, then for every combination of the
custom SFH parameters it samples the SFH on a regular time grid, and for
every age it integrates that SFH against the SSP age bins to produce the
model spectrum and its properties (stellar mass, SFR and specific SFR).

Each model is handed to a consumer callable as soon as it is built, the
builder itself does not retain the grid.

Example usage:

    from sfhgrid import GridConfig, ModelGridBuilder

    config = GridConfig.from_yaml("grid.yml")
    builder = ModelGridBuilder(config)

    models = []
    builder.build(models.append)

    lam, flux = builder.build_template(0)
    sfr = builder.get_sfh(0, t, kind="sfr")
"""

import time

import numpy as np
from tqdm import tqdm

from sfhgrid import exceptions
from sfhgrid.config import AGE_AXIS, METALLICITY_AXIS
from sfhgrid.cosmology import get_age_of_universe
from sfhgrid.expression import compile_formula
from sfhgrid.grid_index import GridIndex
from sfhgrid.reconstruct import reconstruct_sfh
from sfhgrid.sfh import evaluate_sfh, integrate_sfh_bins
from sfhgrid.ssp import load_ssp_library
from sfhgrid.units import UNIT_CATEGORIES, Quantity, has_units
from sfhgrid.utils.integrate import integrate


class Model:
    """A single model of the grid.

    Attributes:
        lam (Quantity):
            The wavelength grid of the spectrum.
        flux (Quantity):
            The spectrum of the model.
        mass (Quantity):
            The surviving stellar mass.
        sfr (Quantity):
            The star formation rate.
        ssfr (Quantity):
            The specific star formation rate.
        properties (dict):
            The physical properties of the model: "mass", "sfr", "ssfr",
            "metallicity", "log10age" and the custom parameter values.
        index (tuple of int):
            The index of the model along each grid axis.
        flat_index (int):
            The flat index of the model in the grid.
        dust_law (np.ndarray of float):
            The dust attenuation curve of the metallicity column (None
            without corrections).
        igm_absorption (np.ndarray of float):
            The IGM absorption tables of the metallicity column (None
            without corrections).
    """

    # Define Quantities
    lam = Quantity("wavelength")
    flux = Quantity("luminosity_density_lam")
    mass = Quantity("mass")
    sfr = Quantity("sfr")
    ssfr = Quantity("ssfr")

    def __init__(
        self,
        lam,
        flux,
        properties,
        index,
        flat_index,
        dust_law=None,
        igm_absorption=None,
    ):
        """Initialise the model.

        Args:
            lam (np.ndarray of float):
                The wavelength grid in Angstrom.
            flux (np.ndarray of float):
                The spectrum.
            properties (dict):
                The physical properties of the model.
            index (tuple of int):
                The index of the model along each grid axis.
            flat_index (int):
                The flat index of the model in the grid.
            dust_law (np.ndarray of float):
                The dust attenuation curve.
            igm_absorption (np.ndarray of float):
                The IGM absorption tables.
        """
        self.lam = lam
        self.flux = flux
        self.properties = properties
        self.index = tuple(index)
        self.flat_index = flat_index
        self.dust_law = dust_law
        self.igm_absorption = igm_absorption

        self.mass = properties["mass"]
        self.sfr = properties["sfr"]
        self.ssfr = properties["ssfr"]

    def __repr__(self):
        """Return a string representation of the model."""
        return f"Model(index={self.index}, flat_index={self.flat_index})"


class ModelGridBuilder:
    """The builder of custom SFH model grids.

    Attributes:
        config (GridConfig):
            The grid configuration.
        formula (Formula):
            The compiled SFH formula.
        corrections (object):
            The dust and IGM corrections provider. It must expose
            build_dust_law(lam) and build_igm_absorption(lam), each
            returning a table passed through to the models.
        index (GridIndex):
            The index of the full grid.
        verbose (int):
            How verbose the builder should be (0 is silent).
    """

    def __init__(self, config, corrections=None, verbose=None):
        """Initialise the builder.

        The SFH formula is compiled here, so an invalid formula is reported
        before any grid work starts.

        Args:
            config (GridConfig):
                The grid configuration.
            corrections (object):
                The dust and IGM corrections provider (optional).
            verbose (int):
                How verbose the builder should be. Defaults to the
                configuration verbosity.
        """
        self.config = config
        self.corrections = corrections
        self.verbose = config.verbose if verbose is None else verbose

        self._start_time = time.perf_counter()

        try:
            self.formula = compile_formula(
                config.custom_sfh, config.custom_param_names
            )
        except exceptions.CompileError as err:
            self._print(err.caret)
            raise

        self.index = GridIndex(config.grid_dims)
        self.custom_index = GridIndex(
            [axis.size for axis in config.custom_params.values()]
        )

        # The last SSP library loaded, keyed by (filename, noflux)
        self._ssp_key = None
        self._ssp = None

    def _print(self, *args, **kwargs):
        """Print a message to the screen with the elapsed time.

        Verbosity:
            0: No output.
            1 or more: Outputs with timings.

        Args:
            *args: The message to print.
            **kwargs: Any keyword arguments accepted by print.
        """
        if self.verbose == 0:
            return

        now = time.perf_counter() - self._start_time
        print(f"[{now:08.2f}]:", *args, **kwargs)

    def _took(self, start, message):
        """Print a message with the time taken since the start time.

        Args:
            start (float): The start time of the process.
            message (str): The message to print.
        """
        elapsed = time.perf_counter() - start

        if elapsed < 1:
            elapsed *= 1000
            units = "ms"
        elif elapsed < 60:
            units = "s"
        else:
            elapsed /= 60
            units = "mins"

        self._print(f"{message} took {elapsed:.3f} {units}.")

    @property
    def ctime(self):
        """Return the time grid on which the SFH is sampled.

        The grid starts at the age of the oldest model and runs down to 0
        in steps of custom_sfh_step.

        Returns:
            np.ndarray of float
                The decreasing times since the onset of star formation.
        """
        dt = float(self.config._custom_sfh_step)
        max_age = 10 ** np.max(self.config.log10ages)
        n = int(np.ceil(max_age / dt)) + 1
        return (dt * np.arange(n))[::-1]

    def _load_ssp(self, im, noflux=False):
        """Return the SSP library of a metallicity.

        The last library loaded is kept, so repeated requests for the same
        metallicity do not read it again. A library with spectra also
        serves requests without them.

        Args:
            im (int):
                The index along the metallicity axis.
            noflux (bool):
                Whether the spectra can be skipped.

        Returns:
            SSPLibrary
                The library.
        """
        filename = self.config.ssp_filename(im)

        if self._ssp is not None and self._ssp_key[0] == filename:
            if noflux or not self._ssp_key[1]:
                return self._ssp

        start = time.perf_counter()
        self._ssp = load_ssp_library(filename, noflux=noflux)
        self._ssp_key = (filename, noflux)
        self._took(start, f"Loading SSP library {filename}")

        return self._ssp

    def _node_parameters(self, ids):
        """Return the custom parameter values of a node.

        Args:
            ids (sequence of int):
                The index along each custom parameter axis.

        Returns:
            list of float
                The parameter values in formula order.
        """
        return [
            float(axis[i])
            for axis, i in zip(self.config.custom_params.values(), ids)
        ]

    def _get_corrections(self, lam):
        """Return the dust and IGM tables for a wavelength grid."""
        if self.corrections is None:
            return None, None

        return (
            self.corrections.build_dust_law(lam),
            self.corrections.build_igm_absorption(lam),
        )

    def _get_sfr(self, ltime, sfh, youngest, ssp):
        """Return the star formation rate of a model.

        Args:
            ltime (np.ndarray of float):
                The lookback times at which the SFH is sampled.
            sfh (np.ndarray of float):
                The SFH at each lookback time.
            youngest (float):
                The mass formed in the youngest SSP bin.
            ssp (SSPLibrary):
                The SSP library.

        Returns:
            float
                The SFR averaged over sfr_avg, or the instantaneous SFR if
                sfr_avg is 0.
        """
        sfr_avg = float(self.config._sfr_avg)

        if sfr_avg > 0:
            t1 = min(sfr_avg, ltime[-1])
            return integrate(ltime, sfh, 0.0, t1) / sfr_avg

        t1s, t2s = ssp.age_bins
        return youngest / (t2s[0] - t1s[0])

    def build(self, consumer):
        """Build every model of the grid.

        The grid is traversed by metallicity, then by combination of the
        custom parameters, then by age. Each model is passed to the
        consumer once, in this deterministic order.

        Args:
            consumer (callable):
                Called with each Model.

        Returns:
            int
                The number of models built.

        Raises:
            LibraryReadError
                If an SSP library cannot be loaded.
        """
        start = time.perf_counter()

        config = self.config
        ctime = self.ctime
        ages = 10 ** config.log10ages
        param_names = config.custom_param_names

        self._print(
            f"Building {config.nmodel} models on a grid of {ctime.size} "
            "time steps."
        )

        nmodel = 0
        with tqdm(
            total=config.nmodel,
            desc="Building models",
            disable=self.verbose == 0,
        ) as pbar:
            for im in range(config.metallicities.size):
                ssp = self._load_ssp(im)
                lam = ssp._lam
                dust_law, igm_absorption = self._get_corrections(lam)

                for custom_ids in self.custom_index:
                    params = self._node_parameters(custom_ids)
                    sfh = evaluate_sfh(self.formula, params, ctime)

                    for ia, age in enumerate(ages):
                        ltime = age - ctime
                        flux, mass, youngest = integrate_sfh_bins(
                            ssp, ltime, sfh
                        )
                        sfr = self._get_sfr(ltime, sfh, youngest, ssp)
                        with np.errstate(all="ignore"):
                            ssfr = np.float64(sfr) / np.float64(mass)

                        properties = {
                            "mass": mass,
                            "sfr": sfr,
                            "ssfr": float(ssfr),
                            METALLICITY_AXIS: float(config.metallicities[im]),
                            AGE_AXIS: float(config.log10ages[ia]),
                        }
                        properties.update(zip(param_names, params))

                        ids = (im, ia, *custom_ids)
                        consumer(
                            Model(
                                lam,
                                flux,
                                properties,
                                ids,
                                self.index.flatten(ids),
                                dust_law=dust_law,
                                igm_absorption=igm_absorption,
                            )
                        )

                        nmodel += 1
                        pbar.update(1)

        self._took(start, f"Building {nmodel} models")

        return nmodel

    def build_template(self, flat_index):
        """Build the spectrum of a single model, per unit stellar mass.

        Args:
            flat_index (int):
                The flat index of the model in the grid.

        Returns:
            lam (unyt_array):
                The wavelength grid.
            flux (unyt_array):
                The spectrum divided by the surviving stellar mass.
        """
        im, ia, *custom_ids = self.index.unflatten(flat_index)

        ssp = self._load_ssp(im)

        ctime = self.ctime
        sfh = evaluate_sfh(
            self.formula, self._node_parameters(custom_ids), ctime
        )

        ltime = 10 ** self.config.log10ages[ia] - ctime
        flux, mass, _ = integrate_sfh_bins(ssp, ltime, sfh)

        with np.errstate(all="ignore"):
            flux = flux / mass

        unit = UNIT_CATEGORIES["specific_luminosity_density_lam"]

        return ssp.lam, flux * unit

    def get_sfh(self, flat_index, t, kind="sfr", redshift=None, age_obs=None):
        """Reconstruct the SFH of a single model.

        Args:
            flat_index (int):
                The flat index of the model in the grid.
            t (array-like of float/unyt_array):
                The increasing cosmic times at which to reconstruct the SFH
                (yr if no units are given).
            kind (str):
                "sfr" or "mass", see sfhgrid.reconstruct.reconstruct_sfh.
            redshift (float):
                The redshift of observation, used to derive age_obs when it
                is not given. Defaults to 0.
            age_obs (float/unyt_quantity):
                The age of the universe at observation (yr if no units are
                given).

        Returns:
            np.ndarray of float
                The reconstructed curve at each time.
        """
        im, ia, *custom_ids = self.index.unflatten(flat_index)

        if age_obs is None:
            age_obs = get_age_of_universe(
                self.config.cosmology,
                0.0 if redshift is None else redshift,
            )
        if has_units(age_obs):
            age_obs = age_obs.to_value("yr")
        if has_units(t):
            t = t.to_value("yr")

        ssp = self._load_ssp(im, noflux=True)

        return reconstruct_sfh(
            self.formula,
            self._node_parameters(custom_ids),
            ssp,
            t,
            10 ** self.config.log10ages[ia],
            age_obs,
            kind,
        )
