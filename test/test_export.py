import numpy as np
import pytest
import xarray as xr

from cmip6cldfbk.export import (
    export_table,
    read_table,
    to_model_series,
    unconstrained_interval,
    write_interval,
)

MODELS = ["ACCESS-CM2", "CESM2", "MIROC6", "UKESM1-0-LL"]


class TestUnconstrainedInterval:
    def test_reference_series(self):
        """Test [1, 2, 3] gives roughly [0.4, 3.6] with the 1.96 multiplier."""
        lower, upper = unconstrained_interval([1.0, 2.0, 3.0])
        assert lower == pytest.approx(2.0 - 1.96 * np.sqrt(2.0 / 3.0))
        assert upper == pytest.approx(2.0 + 1.96 * np.sqrt(2.0 / 3.0))
        assert lower == pytest.approx(0.4, abs=0.01)
        assert upper == pytest.approx(3.6, abs=0.01)

    def test_accepts_dataarray(self):
        """Test a per-model DataArray can be passed directly."""
        da = xr.DataArray([1.0, 2.0, 3.0], dims="model", coords={"model": MODELS[:3]})
        assert unconstrained_interval(da) == unconstrained_interval([1.0, 2.0, 3.0])

    def test_custom_multiplier(self):
        """Test the multiplier scales the half-width."""
        lower, upper = unconstrained_interval([0.0, 2.0], multiplier=1.0)
        assert (lower, upper) == pytest.approx((0.0, 2.0))

    def test_empty_series(self):
        """Test an all-missing series is rejected."""
        with pytest.raises(ValueError):
            unconstrained_interval([np.nan, np.nan])


class TestTables:
    def test_round_trip(self, tmp_path):
        """Test exporting and re-reading keeps value order and count."""
        values = [3.5, -1.25, 7.0, 0.1]
        da = xr.DataArray(values, dims="model", coords={"model": MODELS}, name="sfc-swcre")
        path = export_table(da, str(tmp_path / "tables" / "sfc-swcre_40-50S.txt"))

        result = read_table(path)
        assert len(result) == len(MODELS)
        np.testing.assert_allclose(result, values)

    def test_one_value_per_line(self, tmp_path):
        """Test the table has no header and no index column."""
        da = xr.DataArray([1.5, 2.5], dims="model", coords={"model": MODELS[:2]})
        path = export_table(da, str(tmp_path / "t.txt"))
        with open(path) as f:
            lines = f.read().splitlines()
        assert lines == ["1.5", "2.5"]

    def test_singleton_spatial_dims_collapsed(self):
        """Test a regional mean still carrying lat/lon axes becomes one value per model."""
        da = xr.DataArray(
            np.arange(4.0).reshape(4, 1, 1),
            dims=("model", "lat", "lon"),
            coords={"model": MODELS, "lat": [-45.0], "lon": [0.0]},
        )
        s = to_model_series(da)
        assert list(s.index) == MODELS
        assert list(s.values) == [0.0, 1.0, 2.0, 3.0]

    def test_requires_model_axis(self):
        """Test a field without a record axis cannot be exported."""
        with pytest.raises(ValueError):
            to_model_series(xr.DataArray(np.ones((2, 2)), dims=("lat", "lon")))

    def test_write_interval(self, tmp_path):
        """Test the interval file holds the lower then the upper bound."""
        path = write_interval((0.4, 3.6), str(tmp_path / "interval.txt"))
        np.testing.assert_allclose(read_table(path), [0.4, 3.6])
