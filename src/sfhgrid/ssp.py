"""A module for reading simple stellar population (SSP) libraries.

An SSP library holds, for a single metallicity, the spectrum and the
surviving stellar mass fraction of a population formed in a single burst,
tabulated at a set of ages. Libraries are distributed in the legacy BC03
``.ised_ASCII`` text format, which is slow to parse. The first time a
library is read its content is therefore cached in an HDF5 file next to it
(``<name>.ised_ASCII.hdf5``) and later reads use the cache.

Example usage:

    from sfhgrid.ssp import load_ssp_library

    ssp = load_ssp_library("libraries/ssp.pr/bc03_pr_chab_z02")

    print(ssp.ages, ssp.lam)
    t1, t2 = ssp.age_bins
"""

import os
import threading

import h5py
import numpy as np

from sfhgrid import exceptions
from sfhgrid.sfh_warnings import warn
from sfhgrid.units import Quantity

# Extensions of the two library formats
ASCII_EXT = ".ised_ASCII"
CACHE_EXT = ".ised_ASCII.hdf5"

# The number of extra blocks at the end of the ASCII files and the index of
# the block holding the stellar mass
NEXTRA = 12
MASS_EXTRA = 1

# Names of the IMFs in the library file names
IMF_NAMES = {"ch": "chab", "sa": "salp", "kr": "kroup"}

# Locks serialising cache writes for each cache path
_CACHE_LOCKS = {}
_CACHE_LOCKS_GUARD = threading.Lock()

CORRUPTION_HINT = "the file is probably corrupted, try re-downloading it"


def get_age_bins(ages):
    """Derive the age bins associated to the tabulated SSP ages.

    Each age is given the interval between the midpoints to its neighbours.
    The first bin starts at 0 and the last one ends at the oldest age, so
    the bins partition [0, max(ages)].

    Args:
        ages (array-like of float):
            The strictly increasing SSP ages.

    Returns:
        np.ndarray of float
            The lower bound of each bin.
        np.ndarray of float
            The upper bound of each bin.
    """
    ages = np.asarray(ages, dtype=np.float64)

    t2 = np.empty(ages.size)
    t2[:-1] = 0.5 * (ages[:-1] + ages[1:])
    t2[-1] = ages[-1]

    t1 = np.empty(ages.size)
    t1[0] = 0.0
    t1[1:] = t2[:-1]

    return t1, t2


def ssp_library_filename(library_dir, library, resolution, imf, metallicity):
    """Return the base file name of an SSP library.

    Args:
        library_dir (str):
            The directory containing the ``ssp.<resolution>`` folders.
        library (str):
            The library name (e.g. "bc03").
        resolution (str):
            The spectral resolution code (e.g. "pr", "lr", "hr").
        imf (str):
            The IMF code ("ch", "sa" or "kr") or full IMF name.
        metallicity (float):
            The metallicity of the library.

    Returns:
        str
            The path of the library without extension.
    """
    imf_name = IMF_NAMES.get(imf, imf)
    metal = np.format_float_positional(float(metallicity), trim="-")
    metal = metal.replace("0.", "")

    return os.path.join(
        str(library_dir),
        f"ssp.{resolution}",
        f"{library}_{resolution}_{imf_name}_z{metal}",
    )


class SSPLibrary:
    """A simple stellar population library for one metallicity.

    Attributes:
        filename (str):
            The file the library was read from.
        ages (Quantity, float):
            The strictly increasing ages of the populations.
        lam (Quantity, float):
            The wavelength grid of the spectra (None if the library was read
            without spectra).
        mass (np.ndarray of float):
            The surviving stellar mass fraction at each age.
        sed (np.ndarray of float):
            The spectra, with shape (nage, nlam), per unit formed mass
            (None if the library was read without spectra).
    """

    # Define Quantities
    ages = Quantity("time")
    lam = Quantity("wavelength")

    def __init__(self, ages, mass, lam=None, sed=None, filename=None):
        """Initialise the SSP library.

        Args:
            ages (np.ndarray of float):
                The ages of the populations in yr.
            mass (np.ndarray of float):
                The surviving mass fraction at each age.
            lam (np.ndarray of float):
                The wavelength grid in Angstrom.
            sed (np.ndarray of float):
                The (nage, nlam) spectra.
            filename (str):
                The file the library was read from.
        """
        self.filename = filename
        self.ages = np.asarray(ages, dtype=np.float64)
        self.mass = np.asarray(mass, dtype=np.float64)
        self.lam = None if lam is None else np.asarray(lam, dtype=np.float64)
        self.sed = None if sed is None else np.asarray(sed, dtype=np.float64)

        self._age_bins = None

        self._check()

    def _check(self):
        """Ensure the library arrays are consistent."""
        if self._ages.ndim != 1 or self._ages.size == 0:
            raise exceptions.LibraryReadError(
                "SSP ages must be a non-empty 1D array",
                filename=self.filename,
            )
        if np.any(np.diff(self._ages) <= 0):
            raise exceptions.LibraryReadError(
                "SSP ages must be strictly increasing",
                filename=self.filename,
            )
        if self.mass.shape != self._ages.shape:
            raise exceptions.LibraryReadError(
                f"SSP mass has {self.mass.size} entries for "
                f"{self._ages.size} ages",
                filename=self.filename,
            )
        if self.sed is not None and self.sed.shape != (
            self._ages.size,
            self._lam.size,
        ):
            raise exceptions.LibraryReadError(
                f"SSP spectra have shape {self.sed.shape}, expected "
                f"{(self._ages.size, self._lam.size)}",
                filename=self.filename,
            )

    @property
    def nage(self):
        """Return the number of tabulated ages."""
        return self._ages.size

    @property
    def nlam(self):
        """Return the number of wavelength elements (0 without spectra)."""
        return 0 if self._lam is None else self._lam.size

    @property
    def has_spectra(self):
        """Return whether the spectra were read."""
        return self.sed is not None

    @property
    def age_bins(self):
        """Return the (lower, upper) boundaries of the SSP age bins."""
        if self._age_bins is None:
            self._age_bins = get_age_bins(self._ages)
        return self._age_bins

    def __repr__(self):
        """Return a string representation of the library."""
        return (
            f"SSPLibrary(filename={self.filename!r}, nage={self.nage}, "
            f"nlam={self.nlam})"
        )


class _TokenReader:
    """Read whitespace separated tokens from a text file, line aware.

    Records in the ASCII format can start in the middle of a line, but a few
    header fields are whole lines of free text, so tokens are consumed one
    line at a time.
    """

    def __init__(self, f):
        self.f = f
        self.tokens = []
        self.pos = 0

    def _fill(self):
        while self.pos >= len(self.tokens):
            line = self.f.readline()
            if not line:
                raise EOFError("unexpected end of file")
            self.tokens = line.split()
            self.pos = 0

    def token(self):
        """Return the next token."""
        self._fill()
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def read_int(self):
        """Return the next token as a non-negative integer."""
        value = int(self.token())
        if value < 0:
            raise ValueError(f"negative count {value}")
        return value

    def read_floats(self, n):
        """Return the next n tokens as an array of floats."""
        out = np.empty(n)
        for i in range(n):
            out[i] = float(self.token())
        return out

    def skip_line(self):
        """Discard what is left of the current line."""
        self.tokens = []
        self.pos = 0

    def read_line(self):
        """Return the next full line (discarding the current one)."""
        self.skip_line()
        line = self.f.readline()
        if not line:
            raise EOFError("unexpected end of file")
        return line.rstrip("\n")


def read_ascii(filename):
    """Read an SSP library in the BC03 ASCII format.

    Args:
        filename (str):
            The path to the ``.ised_ASCII`` file.

    Returns:
        SSPLibrary
            The library.

    Raises:
        LibraryReadError
            If the file cannot be opened or its structure is not the
            expected one. The error names the reading stage that failed.
    """
    stage = "open file"
    try:
        with open(filename, "r") as f:
            reader = _TokenReader(f)

            stage = "read number of time steps"
            ntime = reader.read_int()

            stage = "read time steps"
            ages = reader.read_floats(ntime)

            stage = "read IMF and other parameters"
            reader.read_floats(2)
            iseg = reader.read_int()
            reader.read_floats(6 * iseg)

            stage = "read additional parameters"
            totm = reader.read_floats(10)[0]
            reader.token()
            reader.skip_line()
            for _ in range(3):
                reader.read_line()

            stage = "read number of wavelength elements"
            nlam = reader.read_int()

            stage = "read wavelength elements"
            lam = reader.read_floats(nlam)

            stage = "read SEDs"
            sed = np.empty((ntime, nlam))
            for it in range(ntime):
                nstep = reader.read_int()
                if nstep != nlam:
                    raise exceptions.LibraryReadError(
                        f"could not read data in library file '{filename}': "
                        f"corrupted file, wavelength step mismatch: {nstep} "
                        f"vs. {nlam} (reading time step {it} of {ntime}); "
                        f"{CORRUPTION_HINT}",
                        filename=filename,
                        stage=stage,
                    )
                sed[it] = reader.read_floats(nlam)

                # Auxiliary per-age block
                nfunc = reader.read_int()
                reader.read_floats(nfunc)

            stage = "read extras"
            mass = None
            for ie in range(NEXTRA):
                nstep = reader.read_int()
                extra = reader.read_floats(nstep)
                if ie == MASS_EXTRA:
                    mass = extra / totm

    except (OSError, ValueError, EOFError, IndexError) as err:
        raise exceptions.LibraryReadError(
            f"could not read data in library file '{filename}': "
            f"could not {stage} ({err}); {CORRUPTION_HINT}",
            filename=filename,
            stage=stage,
        ) from err

    if mass.size != ntime:
        raise exceptions.LibraryReadError(
            f"could not read data in library file '{filename}': the mass "
            f"block has {mass.size} entries for {ntime} time steps; "
            f"{CORRUPTION_HINT}",
            filename=filename,
            stage="read extras",
        )

    return SSPLibrary(ages, mass, lam, sed, filename=filename)


def read_cache(filename, noflux=False):
    """Read an SSP library from its HDF5 cache.

    Args:
        filename (str):
            The path to the cache file.
        noflux (bool):
            If True only the ages and masses are read.

    Returns:
        SSPLibrary
            The library.

    Raises:
        LibraryReadError
            If the file cannot be read or a column is missing.
    """
    columns = ["age", "mass"] if noflux else ["age", "mass", "lambda", "sed"]

    data = {}
    try:
        with h5py.File(filename, "r") as hf:
            for column in columns:
                if column not in hf:
                    raise exceptions.LibraryReadError(
                        f"could not read column '{column}' from cache file "
                        f"'{filename}'",
                        filename=filename,
                        stage=f"read column {column}",
                    )
                data[column] = hf[column][()]
    except OSError as err:
        raise exceptions.LibraryReadError(
            f"could not read cache file '{filename}' ({err}); "
            "delete it to rebuild it from the ASCII library",
            filename=filename,
            stage="open file",
        ) from err

    return SSPLibrary(
        data["age"],
        data["mass"],
        data.get("lambda"),
        data.get("sed"),
        filename=filename,
    )


def _get_cache_lock(filename):
    """Return the lock guarding writes to a cache path."""
    key = os.path.abspath(filename)
    with _CACHE_LOCKS_GUARD:
        return _CACHE_LOCKS.setdefault(key, threading.Lock())


def write_cache(ssp, filename):
    """Write an SSP library to an HDF5 cache file.

    The file is written under a temporary name and moved into place, so
    concurrent readers never see a partial file and concurrent writers
    merely redo the same work.

    Args:
        ssp (SSPLibrary):
            The library to write (with spectra).
        filename (str):
            The path of the cache file.
    """
    tmp_filename = f"{filename}.{os.getpid()}.{threading.get_ident()}.tmp"

    with _get_cache_lock(filename):
        try:
            with h5py.File(tmp_filename, "w") as hf:
                hf.create_dataset("age", data=ssp._ages)
                hf["age"].attrs["Units"] = "yr"
                hf["age"].attrs["Description"] = "Ages of the populations"

                hf.create_dataset("mass", data=ssp.mass)
                hf["mass"].attrs["Units"] = ""
                hf["mass"].attrs["Description"] = "Surviving mass fraction"

                hf.create_dataset("lambda", data=ssp._lam)
                hf["lambda"].attrs["Units"] = "Angstrom"
                hf["lambda"].attrs["Description"] = "Wavelength grid"

                hf.create_dataset("sed", data=ssp.sed)
                hf["sed"].attrs["Units"] = "Lsun/Angstrom/Msun"
                hf["sed"].attrs["Description"] = "Spectra, [age, wavelength]"

            os.replace(tmp_filename, filename)

        except OSError as err:
            if os.path.exists(tmp_filename):
                os.remove(tmp_filename)
            warn(
                f"Could not write the SSP cache file '{filename}' ({err}). "
                "The ASCII library will be parsed again next time."
            )


def load_ssp_library(filename, noflux=False):
    """Load an SSP library, preferring its HDF5 cache.

    If ``<filename>.ised_ASCII.hdf5`` exists it is read, otherwise
    ``<filename>.ised_ASCII`` is parsed and the cache is written next to it
    for future loads.

    Args:
        filename (str):
            The path of the library, with or without the ``.ised_ASCII``
            extension.
        noflux (bool):
            If True only the ages and masses are needed. The spectra are
            then not returned.

    Returns:
        SSPLibrary
            The library.

    Raises:
        LibraryReadError
            If the library cannot be found or read.
    """
    filename = str(filename)
    if filename.endswith(ASCII_EXT):
        filename = filename[: -len(ASCII_EXT)]

    cache_filename = filename + CACHE_EXT
    ascii_filename = filename + ASCII_EXT

    if os.path.exists(cache_filename):
        return read_cache(cache_filename, noflux=noflux)

    if not os.path.exists(ascii_filename):
        raise exceptions.LibraryReadError(
            f"could not find library: '{filename}' "
            f"(expected extensions *{CACHE_EXT} or *{ASCII_EXT})",
            filename=filename,
            stage="find library",
        )

    ssp = read_ascii(ascii_filename)
    write_cache(ssp, cache_filename)

    if noflux:
        return SSPLibrary(ssp._ages, ssp.mass, filename=ssp.filename)

    return ssp
