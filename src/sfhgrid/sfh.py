"""A submodule for evaluating custom star formation histories.

A custom star formation history is a user supplied formula giving the star
formation rate as a function of the time elapsed since the onset of star
formation, t, and of a set of free parameters. The formula is compiled once
(see sfhgrid.expression) and evaluated here for the parameter values of a
grid node.

Example usage:

    from sfhgrid.sfh import CustomSFH

    sfh = CustomSFH("exp(-t/tau)", ["tau"], tau=1e9)

    t, sfr = sfh.calculate_sfh(t_range=(0, 1e10), dt=1e7)
    sfh.plot_sfh()

"""

import matplotlib.pyplot as plt
import numpy as np
from unyt import yr

from sfhgrid import exceptions
from sfhgrid.expression import Formula, compile_formula
from sfhgrid.utils.integrate import IntegrationHint, integrate_hinted


def evaluate_sfh(formula, parameter_values, t):
    """Evaluate a compiled SFH formula over an array of times.

    Args:
        formula (Formula):
            The compiled formula.
        parameter_values (sequence of float):
            The values of the formula parameters, in the order the
            parameter names were given at compile time.
        t (array-like of float):
            The times at which to evaluate the formula.

    Returns:
        np.ndarray of float
            The star formation rate at each time, in the order of t.
    """
    if len(parameter_values) != formula.nparams:
        raise exceptions.InconsistentArguments(
            f"The formula '{formula.text}' expects {formula.nparams} "
            f"parameter value(s) (got {len(parameter_values)})."
        )

    t = np.asarray(t, dtype=np.float64)

    sfh = formula.evaluate([t, *parameter_values])

    # Formulas that do not depend on t evaluate to a scalar
    return np.broadcast_to(np.asarray(sfh, dtype=np.float64), t.shape).copy()


def integrate_sfh_bins(ssp, ltime, sfh, with_flux=True):
    """Integrate a star formation history against the SSP age bins.

    The mass formed within each SSP age bin is obtained by integrating the
    SFH over the bin, the bins being visited from the youngest to the
    oldest so a single hint carries the search across the sweep. Bins
    beyond the oldest sampled lookback time are skipped.

    Args:
        ssp (SSPLibrary):
            The SSP library.
        ltime (np.ndarray of float):
            The increasing lookback times at which the SFH is sampled.
        sfh (np.ndarray of float):
            The SFR at each lookback time.
        with_flux (bool):
            Whether to accumulate the spectrum (requires the SSP spectra).

    Returns:
        flux (np.ndarray of float):
            The sum of the spectra weighted by the formed mass (None if
            with_flux is False).
        mass (float):
            The surviving stellar mass.
        youngest (float):
            The mass formed in the youngest SSP bin.
    """
    t1s, t2s = ssp.age_bins
    tmax = ltime[-1]

    flux = np.zeros(ssp.nlam) if with_flux else None
    mass = 0.0
    youngest = 0.0

    hint = IntegrationHint()
    for it in range(ssp.nage):
        if t1s[it] > tmax:
            break

        t2 = min(t2s[it], tmax)
        formed = integrate_hinted(ltime, sfh, hint, t1s[it], t2)

        if it == 0:
            youngest = formed
        if with_flux:
            flux += formed * ssp.sed[it]
        mass += formed * ssp.mass[it]

    return flux, mass, youngest


class CustomSFH:
    """A star formation history defined by a formula.

    Attributes:
        formula (Formula):
            The compiled formula.
        parameters (dict):
            The parameter values, keyed by parameter name.
    """

    def __init__(self, formula, parameter_names=(), **parameter_values):
        """Initialise the custom SFH.

        Args:
            formula (str/Formula):
                The formula text, or an already compiled formula.
            parameter_names (list of str):
                The ordered names of the formula parameters (ignored if a
                compiled formula is passed).
            **parameter_values (dict):
                The value of each parameter.
        """
        if isinstance(formula, Formula):
            self.formula = formula
        else:
            self.formula = compile_formula(formula, parameter_names)

        missing = set(self.formula.parameter_names) - set(parameter_values)
        if missing:
            raise exceptions.InconsistentArguments(
                f"Missing values for the SFH parameters {sorted(missing)}."
            )
        unknown = set(parameter_values) - set(self.formula.parameter_names)
        if unknown:
            raise exceptions.InconsistentArguments(
                f"Unknown SFH parameters {sorted(unknown)}. The formula "
                f"parameters are {list(self.formula.parameter_names)}."
            )

        self.parameters = {
            name: parameter_values[name]
            for name in self.formula.parameter_names
        }

    @property
    def parameter_values(self):
        """Return the parameter values in formula order."""
        return [self.parameters[name] for name in self.formula.parameter_names]

    def get_sfr(self, t):
        """Calculate the star formation rate.

        Args:
            t (float/np.ndarray of float):
                The time(s) since the onset of star formation, in yr.

        Returns:
            float/np.ndarray of float
                The SFR at the passed time(s).
        """
        if np.ndim(t) == 0:
            return float(evaluate_sfh(self.formula, self.parameter_values, t))

        return evaluate_sfh(self.formula, self.parameter_values, t)

    def calculate_sfh(self, t_range=(0, 10**10), dt=10**6):
        """Calculate the star formation history over a specified time range.

        Args:
            t_range (tuple, float):
                The time limits over which to calculate the SFH.
            dt (float):
                The interval between time bins.

        Returns:
            t (np.ndarray of float):
                The time bins.
            sfh (np.ndarray of float):
                The SFH.
        """
        t = np.arange(*t_range, dt)

        return t, self.get_sfr(t)

    def plot_sfh(self, t_range=(0, 10**10), dt=10**6, show=True, save=False):
        """Create a quick plot of the star formation history.

        Args:
            t_range (tuple, float):
                The time limits over which to calculate the SFH.
            dt (float):
                The interval between time bins.
            show (bool):
                Display the plot to screen directly.
            save (bool, string):
                If False, don't save. If a string, save to this path.

        Returns:
            fig (matplotlib.figure.Figure):
                The figure.
            ax (matplotlib.axes.Axes):
                The axes.
        """
        t, sfh = self.calculate_sfh(t_range=t_range, dt=dt)

        fig, ax = plt.subplots()
        ax.plot(t, sfh)
        ax.set_xlabel(f"t ({yr})")
        ax.set_ylabel("SFR")
        ax.set_xlim(0, None)

        if show:
            plt.show()

        if save:
            fig.savefig(save, bbox_inches="tight")
            plt.close(fig)

        return fig, ax

    def __str__(self):
        """Print a basic summary of the star formation history."""
        pstr = ""
        pstr += "-" * 10 + "\n"
        pstr += "SUMMARY OF CUSTOM STAR FORMATION HISTORY" + "\n"
        pstr += f"formula: {self.formula.text}" + "\n"
        for parameter_name, parameter_value in self.parameters.items():
            pstr += f"{parameter_name}: {parameter_value}" + "\n"
        pstr += "-" * 10 + "\n"

        return pstr
