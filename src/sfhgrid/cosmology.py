"""A module containing helper functions for cosmology calculations.

This module interfaces with astropy.cosmology and provides cached functions
for the (repeated) calculation of the age of the universe at the epoch of
observation, which sets the upper end of reconstructed star formation
histories.
"""

import inspect
from functools import lru_cache

import astropy.cosmology as cosmo_module
import numpy as np
from astropy import units as u
from unyt import yr

# The cosmology used when none is configured
DEFAULT_H0 = 70.0
DEFAULT_OM0 = 0.3


def get_default_cosmology(H0=DEFAULT_H0, Om0=DEFAULT_OM0):
    """Return a flat Lambda-CDM cosmology.

    Args:
        H0 (float): The Hubble constant in km/s/Mpc.
        Om0 (float): The matter density parameter at z=0.

    Returns:
        astropy.cosmology.FlatLambdaCDM: The cosmology.
    """
    return cosmo_module.FlatLambdaCDM(H0=H0, Om0=Om0)


def _get_cosmo_key(cosmo):
    """Create a hashable key for a cosmology object.

    Astropy cosmology objects are not hashable, so to cache results on them
    we extract the parameters needed to rebuild them into a tuple.

    Args:
        cosmo (astropy.cosmology.FLRW): An instance of an astropy cosmology.

    Returns:
        tuple: A hashable tuple representing the cosmology parameters.
    """
    class_name = cosmo.__class__.__name__

    valid_params = set(
        inspect.signature(cosmo.__class__.__init__).parameters.keys()
    )
    valid_params.discard("self")

    params = {}
    for param_name in valid_params:
        value = getattr(cosmo, param_name, None)
        if value is None:
            continue

        if isinstance(value, u.Quantity):
            if isinstance(value.value, np.ndarray):
                params[param_name] = tuple(value.value.tolist())
            else:
                params[param_name] = float(value.value)
        elif isinstance(value, (int, float, str)):
            params[param_name] = value

    return (class_name, tuple(sorted(params.items())))


def _reconstruct_cosmology(cosmo_key):
    """Reconstruct a cosmology object from its key.

    Args:
        cosmo_key (tuple): A tuple containing (class_name, param_items).

    Returns:
        astropy.cosmology.FLRW: The reconstructed cosmology object.
    """
    class_name, param_items = cosmo_key
    params = dict(param_items)

    cosmo_class = getattr(cosmo_module, class_name)
    signature = inspect.signature(cosmo_class.__init__)

    required_params = {
        name
        for name, param in signature.parameters.items()
        if param.default is param.empty
        and name != "self"
        and param.kind
        not in (
            inspect.Parameter.VAR_POSITIONAL,
            inspect.Parameter.VAR_KEYWORD,
        )
    }
    for param in required_params:
        if param not in params:
            raise ValueError(
                f"Cannot reconstruct {class_name} cosmology: we seem to be "
                f"missing required parameter '{param}'"
            )

    kwargs = {}
    for key, value in params.items():
        if key not in signature.parameters:
            continue

        if key == "H0":
            kwargs[key] = value * u.km / u.s / u.Mpc
        elif key == "Tcmb0":
            kwargs[key] = value * u.K
        elif isinstance(value, tuple):
            kwargs[key] = u.Quantity(value, u.eV)
        else:
            kwargs[key] = value

    return cosmo_class(**kwargs)


@lru_cache(maxsize=1000)
def _cached_age(cosmo_key, redshift):
    """Internal cached function for the age of the universe.

    Args:
        cosmo_key (tuple): A hashable representation of the cosmology.
        redshift (float): The redshift at which to compute the age.

    Returns:
        float: The age of the universe in yr.
    """
    cosmo = _reconstruct_cosmology(cosmo_key)
    return cosmo.age(redshift).to("yr").value


def get_age_of_universe(cosmo, redshift):
    """Get the age of the universe at a given redshift.

    The result is cached per cosmology and redshift, so repeated requests
    (one per reconstructed SFH) only hit astropy once.

    Args:
        cosmo (astropy.cosmology.FLRW): An instance of an astropy cosmology.
        redshift (float): The redshift of observation.

    Returns:
        unyt_quantity: The age of the universe in yr.
    """
    return _cached_age(_get_cosmo_key(cosmo), float(redshift)) * yr
