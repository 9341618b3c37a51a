"""The main module for the sfhgrid package."""

# Get the data directory stuff we need before importing the rest of the
# package.
from sfhgrid.data.initialise import get_base_dir, get_library_dir

# Define the directory paths we need throughout the package.
BASE_DIR = get_base_dir()
LIBRARY_DIR = get_library_dir()

# Make a version available at the top level
from sfhgrid._version import __version__

# Import things we want at the top level
from sfhgrid.builder import Model, ModelGridBuilder
from sfhgrid.config import GridConfig
from sfhgrid.expression import Formula, compile_formula
from sfhgrid.grid_index import GridIndex
from sfhgrid.reconstruct import reconstruct_sfh
from sfhgrid.sfh import CustomSFH, evaluate_sfh
from sfhgrid.ssp import SSPLibrary, load_ssp_library

# Define the __all__ variable to control what is imported with
# 'from sfhgrid import *'
__all__ = [
    "compile_formula",
    "Formula",
    "load_ssp_library",
    "SSPLibrary",
    "evaluate_sfh",
    "CustomSFH",
    "GridIndex",
    "GridConfig",
    "Model",
    "ModelGridBuilder",
    "reconstruct_sfh",
    "__version__",
    "BASE_DIR",
    "LIBRARY_DIR",
]
