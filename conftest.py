"""A collection of fixtures for testing the sfhgrid package."""

import numpy as np
import pytest
from unyt import yr

from sfhgrid.builder import ModelGridBuilder
from sfhgrid.config import GridConfig
from sfhgrid.ssp import ssp_library_filename

# ============================= SSP LIBRARIES =================================

# A tiny library with three ages and four wavelengths
SSP_AGES = np.array([1.0, 2.0, 3.0])
SSP_MASS = np.array([1.0, 0.8, 0.6])
SSP_LAM = np.array([1000.0, 2000.0, 3000.0, 4000.0])
SSP_SED = np.array(
    [
        [1.0, 1.0, 1.0, 1.0],
        [2.0, 2.0, 2.0, 2.0],
        [3.0, 3.0, 3.0, 3.0],
    ]
)


def write_bc03_ascii(
    path,
    ages=SSP_AGES,
    mass=SSP_MASS,
    lam=SSP_LAM,
    sed=SSP_SED,
    totm=2.0,
):
    """Write an SSP library in the BC03 ASCII format.

    Args:
        path (str):
            The file to write.
        ages (np.ndarray of float):
            The SSP ages.
        mass (np.ndarray of float):
            The surviving mass fraction at each age.
        lam (np.ndarray of float):
            The wavelength grid.
        sed (np.ndarray of float):
            The (nage, nlam) spectra.
        totm (float):
            The total mass used to normalise the mass block.
    """
    ages = np.asarray(ages)

    lines = []
    lines.append(f"{ages.size} " + " ".join(repr(float(a)) for a in ages))

    # IMF: ml, mu, iseg and one segment of six numbers
    lines.append("0.1 100.0 1")
    lines.append("0.1 100.0 1.3 0.0 0.0 0.0")

    # Ten additional parameters (totm first) and the library identifier
    lines.append(f"{totm} 0.0 0.0 0 0 0 0.0 0.0 0.0 0.0 Bruzual & Charlot")
    lines.append("Padova 1994 tracks")
    lines.append("Chabrier IMF")
    lines.append("Synthetic test library")

    lines.append(f"{len(lam)}")
    lines.append(" ".join(repr(float(x)) for x in lam))

    for row in sed:
        lines.append(f"{len(row)} " + " ".join(repr(float(f)) for f in row))
        lines.append("2 0.0 0.0")

    for ie in range(12):
        if ie == 1:
            block = np.asarray(mass) * totm
        else:
            block = np.full(ages.size, float(ie))
        lines.append(
            f"{block.size} " + " ".join(repr(float(b)) for b in block)
        )

    with open(path, "w") as f:
        f.write("\n".join(lines) + "\n")


@pytest.fixture
def library_dir(tmp_path):
    """Return a library directory holding a solar metallicity library."""
    base = ssp_library_filename(tmp_path, "bc03", "pr", "ch", 0.02)
    (tmp_path / "ssp.pr").mkdir()
    write_bc03_ascii(base + ".ised_ASCII")
    return tmp_path


@pytest.fixture
def ssp_base(library_dir):
    """Return the base file name of the test library."""
    return ssp_library_filename(library_dir, "bc03", "pr", "ch", 0.02)


# ================================ CONFIGS ====================================


@pytest.fixture
def constant_config(library_dir):
    """Return a config with a constant SFH observed at an age of 3 yr."""
    return GridConfig(
        custom_sfh="1",
        custom_sfh_step=0.5 * yr,
        metallicities=[0.02],
        log10ages=[np.log10(3.0)],
        library_dir=library_dir,
        verbose=0,
    )


@pytest.fixture
def param_config(library_dir):
    """Return a config with one custom parameter and two ages."""
    return GridConfig(
        custom_sfh="a",
        custom_params={"a": [1.0, 2.0]},
        custom_sfh_step=0.5 * yr,
        metallicities=[0.02],
        log10ages=[0.0, np.log10(2.0)],
        library_dir=library_dir,
        verbose=0,
    )


# ================================ BUILDERS ===================================


@pytest.fixture
def constant_builder(constant_config):
    """Return a builder for the constant SFH grid."""
    return ModelGridBuilder(constant_config)


@pytest.fixture
def param_builder(param_config):
    """Return a builder for the parametric SFH grid."""
    return ModelGridBuilder(param_config)
