"""A test suite for the grid configuration."""

import os

import numpy as np
import pytest
from unyt import Msun, Myr, yr

from sfhgrid import exceptions
from sfhgrid.config import GridConfig, make_axis


class TestMakeAxis:
    """Tests for building grid axes."""

    def test_explicit_values(self):
        """Test an explicit list of values."""
        assert np.array_equal(make_axis("a", [1, 2, 3]), [1.0, 2.0, 3.0])

    def test_scalar(self):
        """Test a single value makes a one element axis."""
        assert np.array_equal(make_axis("a", 0.02), [0.02])

    def test_range_includes_max(self):
        """Test a range includes its upper bound."""
        axis = make_axis("log10ages", {"min": 8.0, "max": 10.0, "step": 0.2})

        assert axis.size == 11
        assert axis[0] == 8.0
        assert axis[-1] == pytest.approx(10.0)

    def test_empty_axis(self):
        """Test an empty axis is a configuration error."""
        with pytest.raises(exceptions.ConfigurationError):
            make_axis("a", [])

    def test_bad_range(self):
        """Test invalid ranges are configuration errors."""
        with pytest.raises(exceptions.ConfigurationError):
            make_axis("a", {"min": 1.0, "max": 2.0})
        with pytest.raises(exceptions.ConfigurationError):
            make_axis("a", {"min": 1.0, "max": 2.0, "step": 0.0})
        with pytest.raises(exceptions.ConfigurationError):
            make_axis("a", {"min": 3.0, "max": 2.0, "step": 1.0})


class TestGridConfig:
    """Tests for the resolved grid configuration."""

    def test_defaults(self, tmp_path):
        """Test the default configuration values."""
        config = GridConfig("1", library_dir=tmp_path)

        assert config._custom_sfh_step == 1e6
        assert config._sfr_avg == 0
        assert np.array_equal(config.metallicities, [0.02])
        assert config.log10ages.size == 11
        assert config.library == "bc03"
        assert config.resolution == "pr"
        assert config.imf == "ch"

    def test_library_default_metallicity(self, tmp_path):
        """Test the default metallicity depends on the library."""
        config = GridConfig("1", library="co11", library_dir=tmp_path)
        assert np.array_equal(config.metallicities, [0.019])

    def test_time_units_are_converted(self, tmp_path):
        """Test time quantities are stored in yr."""
        config = GridConfig(
            "1",
            custom_sfh_step=2 * Myr,
            sfr_avg=100 * Myr,
            library_dir=tmp_path,
        )

        assert config._custom_sfh_step == pytest.approx(2e6)
        assert config.sfr_avg.units == yr
        assert config.sfr_avg.value == pytest.approx(1e8)

    def test_time_units_are_checked(self, tmp_path):
        """Test time quantities need compatible units."""
        with pytest.raises(exceptions.MissingUnits):
            GridConfig("1", custom_sfh_step=1e6, library_dir=tmp_path)
        with pytest.raises(exceptions.IncorrectUnits):
            GridConfig("1", custom_sfh_step=1 * Msun, library_dir=tmp_path)

    def test_missing_formula(self, tmp_path):
        """Test a formula is required."""
        with pytest.raises(exceptions.ConfigurationError):
            GridConfig("  ", library_dir=tmp_path)
        with pytest.raises(exceptions.ConfigurationError):
            GridConfig.from_dict({"library_dir": str(tmp_path)})

    def test_axes(self, tmp_path):
        """Test the grid axes and dimensions."""
        config = GridConfig(
            "a * t + b",
            custom_params={
                "a": [1, 2, 3],
                "b": {"min": 0, "max": 1, "step": 1},
            },
            metallicities=[0.004, 0.02],
            log10ages=[8, 9, 10, 11],
            library_dir=tmp_path,
        )

        assert list(config.axes) == ["metallicity", "log10age", "a", "b"]
        assert config.grid_dims == [2, 4, 3, 2]
        assert config.nmodel == 48
        assert config.custom_param_names == ["a", "b"]

    def test_ssp_filename(self, tmp_path):
        """Test the library file of each metallicity."""
        config = GridConfig(
            "1",
            metallicities=[0.004, 0.02],
            imf="sa",
            library_dir=tmp_path,
        )

        assert config.ssp_filename(0) == os.path.join(
            str(tmp_path), "ssp.pr", "bc03_pr_salp_z004"
        )
        assert config.ssp_filename(1).endswith("bc03_pr_salp_z02")

    def test_from_yaml(self, tmp_path):
        """Test loading a configuration from a YAML file."""
        path = tmp_path / "grid.yml"
        path.write_text(
            "custom_sfh: 'step(t - tdelay)'\n"
            "custom_params:\n"
            "  tdelay: [0.0, 1.0e+8]\n"
            "custom_sfh_step: 1.0e+7\n"
            "sfr_avg: 1.0e+8\n"
            "metallicities: [0.02]\n"
            "log10ages: {min: 8.0, max: 9.0, step: 0.5}\n"
            f"library_dir: '{tmp_path}'\n"
            "cosmology: {H0: 67.0, Om0: 0.32}\n"
            "verbose: 0\n"
        )

        config = GridConfig.from_yaml(path)

        assert config.custom_sfh == "step(t - tdelay)"
        assert np.array_equal(config.custom_params["tdelay"], [0.0, 1e8])
        assert config._custom_sfh_step == pytest.approx(1e7)
        assert config._sfr_avg == pytest.approx(1e8)
        assert np.allclose(config.log10ages, [8.0, 8.5, 9.0])
        assert np.isclose(config.cosmology.H0.value, 67.0)
        assert config.verbose == 0

    def test_unknown_keys_warn(self, tmp_path):
        """Test unknown configuration keys are ignored with a warning."""
        with pytest.warns(RuntimeWarning, match="unknown grid"):
            config = GridConfig.from_dict(
                {
                    "custom_sfh": "1",
                    "library_dir": str(tmp_path),
                    "n_sim": 100,
                }
            )

        assert config.custom_sfh == "1"

    def test_yaml_must_be_mapping(self, tmp_path):
        """Test a YAML file without a mapping is rejected."""
        path = tmp_path / "grid.yml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(exceptions.ConfigurationError):
            GridConfig.from_yaml(path)
