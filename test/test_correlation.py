import numpy as np
import pytest
import xarray as xr

from cmip6cldfbk.correlation import (
    correlate_across_models,
    correlate_predictor,
    correlation_zonal_mean,
)
from cmip6cldfbk.decomposition import (
    contribution_map,
    decompose,
    spread_ratio,
    write_decomposition,
)
from cmip6cldfbk.errors import RecordAlignmentError

MODELS = ["m1", "m2", "m3"]


def series(values, models=MODELS):
    return xr.DataArray(
        np.asarray(values, dtype=float), dims="model", coords={"model": list(models)}
    )


@pytest.fixture
def two_point_field():
    """(model, lat, lon) field on a 2-point grid with equal area weights."""
    data = np.array([[1.0, 3.0], [2.0, 2.0], [3.0, 7.0]]).reshape(3, 2, 1)
    return xr.DataArray(
        data,
        dims=("model", "lat", "lon"),
        coords={"model": MODELS, "lat": [-60.0, 60.0], "lon": [0.0]},
        name="CLDfbk",
    )


class TestCorrelateAcrossModels:
    def test_perfect_correlation(self):
        """Test linearly related series correlate at +1 and -1."""
        a = series([1.0, 2.0, 3.0])
        assert float(correlate_across_models(a, 2 * a + 1)) == pytest.approx(1.0)
        assert float(correlate_across_models(a, -a)) == pytest.approx(-1.0)

    def test_symmetric(self, make_ensemble):
        """Test corr(A, B) == corr(B, A) exactly."""
        rng = np.random.default_rng(7)
        models = ["a", "b", "c", "d", "e"]
        a = make_ensemble(list(rng.random((5, 36, 36))), models)
        b = make_ensemble(list(rng.random((5, 36, 36))), models)
        xr.testing.assert_equal(correlate_across_models(a, b), correlate_across_models(b, a))

    def test_per_coordinate(self):
        """Test each latitude is correlated on its own."""
        predictor = series([1.0, 2.0, 3.0])
        zonal = xr.DataArray(
            [[1.0, 3.0], [2.0, 2.0], [3.0, 1.0]],
            dims=("model", "lat"),
            coords={"model": MODELS, "lat": [-45.0, 45.0]},
        )
        r = correlate_across_models(predictor, zonal)
        assert r.dims == ("lat",)
        np.testing.assert_allclose(r.values, [1.0, -1.0])

    def test_predictor_broadcast_either_side(self, two_point_field):
        """Test a per-model series is broadcast whichever argument it is."""
        predictor = series([1.0, 2.0, 3.0])
        xr.testing.assert_equal(
            correlate_across_models(predictor, two_point_field),
            correlate_across_models(two_point_field, predictor).transpose("lat", "lon"),
        )

    def test_order_mismatch_raises(self):
        """Test collections with the same models in a different order are refused."""
        a = series([1.0, 2.0, 3.0])
        b = series([1.0, 2.0, 3.0], models=["m2", "m1", "m3"])
        with pytest.raises(RecordAlignmentError) as excinfo:
            correlate_across_models(a, b)
        assert "m1 != m2" in str(excinfo.value)

    def test_length_mismatch_raises(self):
        """Test collections of different lengths are refused."""
        with pytest.raises(RecordAlignmentError):
            correlate_across_models(series([1.0, 2.0, 3.0]), series([1.0, 2.0], ["m1", "m2"]))

    def test_zonal_mean_of_map(self, two_point_field):
        """Test the map reduction collapses longitude only."""
        r = correlate_across_models(series([1.0, 2.0, 3.0]), two_point_field)
        zm = correlation_zonal_mean(r)
        assert zm.dims == ("lat",)
        np.testing.assert_allclose(zm.values, r.isel(lon=0).values)


class TestDecomposition:
    def test_hand_computed_factors(self, two_point_field):
        """Test both factors and their product on a 2-point grid."""
        predictor = series([1.0, 2.0, 3.0])
        dec = decompose(predictor, two_point_field)

        # global means [2, 2, 5] -> std sqrt(2)
        # point stds sqrt(2/3) and sqrt(14/3)
        np.testing.assert_allclose(
            dec.factor1.values.ravel(), [np.sqrt(1.0 / 3.0), np.sqrt(7.0 / 3.0)]
        )
        np.testing.assert_allclose(dec.factor2.values.ravel(), [1.0, 2.0 / np.sqrt(7.0)])
        np.testing.assert_allclose(
            dec.contribution.values.ravel(), [np.sqrt(1.0 / 3.0), 2.0 / np.sqrt(3.0)]
        )

    def test_contribution_is_exact_product(self, two_point_field):
        """Test the contribution map equals factor1 * factor2 exactly."""
        dec = decompose(series([1.0, 2.0, 3.0]), two_point_field)
        xr.testing.assert_equal(dec.contribution, dec.factor1 * dec.factor2)
        xr.testing.assert_equal(contribution_map(dec.factor1, dec.factor2), dec.contribution)

    def test_spread_ratio_uniform_field(self, make_ensemble):
        """Test a field whose spread is the same everywhere has a ratio of 1."""
        ens = make_ensemble([1.0, 2.0, 4.0], MODELS)
        np.testing.assert_allclose(spread_ratio(ens).values, 1.0)

    def test_misaligned_predictor(self, two_point_field):
        """Test the predictor must follow the field's model order."""
        with pytest.raises(RecordAlignmentError):
            decompose(series([1.0, 2.0, 3.0], ["m3", "m2", "m1"]), two_point_field)


class TestWriters:
    def test_correlate_predictor_files(self, tmp_path, two_point_field):
        """Test the three correlation products are written."""
        zonal = two_point_field.mean("lon")
        handles = correlate_predictor(
            series([1.0, 2.0, 3.0]), zonal, two_point_field, str(tmp_path), "sfc-swcre_40-50S"
        )
        assert set(handles) == {"zonal", "map", "map_zonal"}
        assert handles["map"].path.endswith("cor_sfc-swcre_40-50S_CLDfbk_map.nc")
        for handle in handles.values():
            assert handle.exists()
        np.testing.assert_allclose(handles["zonal"].open().values, [1.0, 2.0 / np.sqrt(7.0)])

    def test_write_decomposition(self, tmp_path, two_point_field):
        """Test the factors and the contribution map are written."""
        dec = decompose(series([1.0, 2.0, 3.0]), two_point_field)
        handles = write_decomposition(dec, str(tmp_path), "sfc-swcre_40-50S")
        assert handles["contribution"].path.endswith("contribution_sfc-swcre_40-50S_CLDfbk.nc")
        np.testing.assert_allclose(
            handles["contribution"].open().values, dec.contribution.values
        )
