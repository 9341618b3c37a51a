"""A module for reconstructing the star formation history of a grid node.

The grid builder only keeps the integrated properties of each model. For
reporting and plotting it is useful to get back the SFH itself on an
arbitrary grid of cosmic times, either as a star formation rate normalised
to a unit surviving mass at the epoch of observation ("sfr"), or as the
cumulative surviving mass normalised to one at that epoch ("mass").

Example usage:

    from sfhgrid.reconstruct import reconstruct_sfh

    t = np.linspace(0, 13.5e9, 1000)
    sfr = reconstruct_sfh(formula, [1e9], ssp, t, age=1e9, age_obs=13.5e9)
"""

import numpy as np

from sfhgrid import exceptions
from sfhgrid.sfh import evaluate_sfh, integrate_sfh_bins

# The kinds of curves that can be reconstructed
SFH_KINDS = ("sfr", "mass")


def reconstruct_sfh(formula, parameter_values, ssp, t, age, age_obs, kind):
    """Reconstruct the SFH of a galaxy on a grid of cosmic times.

    The galaxy started forming stars at age_born = age_obs - age. The SFH
    formula is evaluated at t - age_born for the times within
    [age_born, age_obs], and is zero elsewhere.

    Args:
        formula (Formula):
            The compiled SFH formula.
        parameter_values (sequence of float):
            The values of the formula parameters.
        ssp (SSPLibrary):
            The SSP library of the galaxy metallicity (spectra are not
            needed).
        t (array-like of float):
            The increasing cosmic times at which to reconstruct the SFH, in
            yr.
        age (float):
            The age of the galaxy at observation, in yr.
        age_obs (float):
            The age of the universe at observation, in yr.
        kind (str):
            "sfr" for the star formation rate normalised to a unit
            surviving mass at observation, or "mass" for the surviving mass
            normalised to one at observation.

    Returns:
        np.ndarray of float
            The reconstructed curve at each time.

    Raises:
        ConfigurationError
            If kind is not one of the known kinds.
    """
    if kind not in SFH_KINDS:
        raise exceptions.ConfigurationError(
            f"Unknown SFH type '{kind}'. Options are {list(SFH_KINDS)}."
        )

    t = np.asarray(t, dtype=np.float64)
    if t.ndim != 1 or t.size < 2:
        raise exceptions.InconsistentArguments(
            "The output times must be a 1D array of at least two values."
        )
    if np.any(np.diff(t) <= 0):
        raise exceptions.InconsistentArguments(
            "The output times must be strictly increasing."
        )

    age = float(age)
    age_obs = float(age_obs)
    age_born = age_obs - age

    # Evaluate the SFH over the lifetime of the galaxy only
    sfh = np.zeros(t.size)
    inside = (t >= age_born) & (t <= age_obs)
    if np.any(inside):
        sfh[inside] = evaluate_sfh(
            formula, parameter_values, t[inside] - age_born
        )

    # Integration runs over lookback times, i.e. backwards in time
    lsfh = sfh[::-1]

    if kind == "sfr":
        # Surviving mass at the epoch of observation
        _, mass, _ = integrate_sfh_bins(
            ssp, age_obs - t[::-1], lsfh, with_flux=False
        )

        with np.errstate(all="ignore"):
            return sfh / mass

    # Surviving mass at each output time
    mass = np.zeros(t.size)
    for i, ti in enumerate(t):
        _, mass[i], _ = integrate_sfh_bins(
            ssp, ti - t[::-1], lsfh, with_flux=False
        )

    with np.errstate(all="ignore"):
        return mass / np.interp(age_obs, t, mass)
