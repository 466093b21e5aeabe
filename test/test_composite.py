import numpy as np
import pytest

from cmip6cldfbk.composite import (
    composite_difference,
    find_variable_files,
    group_mean,
)
from cmip6cldfbk.errors import MissingInputError


@pytest.fixture
def groups(tmp_path, make_field):
    one = tmp_path / "cluster1"
    two = tmp_path / "cluster2"
    one.mkdir()
    two.mkdir()
    for model, value in [("CESM2", 12.0), ("MIROC6", 8.0)]:
        make_field(value, name="sfc-swcre").to_dataset().to_netcdf(one / f"sfc-swcre_{model}.nc")
        make_field(value + 290.0, name="ts").to_dataset().to_netcdf(one / f"ts_{model}.nc")
    for model, value in [("CanESM5", 4.0), ("GFDL-CM4", 2.0), ("MRI-ESM2-0", 3.0)]:
        make_field(value, name="sfc-swcre").to_dataset().to_netcdf(two / f"sfc-swcre_{model}.nc")
        make_field(value + 290.0, name="ts").to_dataset().to_netcdf(two / f"ts_{model}.nc")
    return str(one), str(two)


class TestFindVariableFiles:
    def test_substring_match(self, groups):
        """Test files are selected by variable-name substring, sorted."""
        files = find_variable_files(groups[0], "sfc-swcre")
        assert [f.rsplit("/", 1)[-1] for f in files] == [
            "sfc-swcre_CESM2.nc",
            "sfc-swcre_MIROC6.nc",
        ]

    def test_no_match(self, groups):
        """Test an unknown variable matches nothing."""
        assert find_variable_files(groups[0], "pr") == []


class TestCompositeDifference:
    def test_group_means_and_difference(self, tmp_path, groups):
        """Test each group is averaged and group two is subtracted from group one."""
        results = composite_difference(
            groups[0], groups[1], ["sfc-swcre", "ts"], str(tmp_path / "out")
        )

        swcre = results["sfc-swcre"]
        np.testing.assert_allclose(swcre["group_one"].open().values, 10.0)
        np.testing.assert_allclose(swcre["group_two"].open().values, 3.0)
        np.testing.assert_allclose(swcre["difference"].open().values, 7.0)
        np.testing.assert_allclose(results["ts"]["difference"].open().values, 7.0)

    def test_substring_collision_warns(self, tmp_path, groups, make_field):
        """Test a file matching two variable names is flagged."""
        make_field(1.0, name="ts").to_dataset().to_netcdf(
            f"{groups[0]}/ts_sfc-swcre_extra.nc"
        )
        with pytest.warns(UserWarning, match="matches several variables"):
            composite_difference(
                groups[0], groups[1], ["sfc-swcre", "ts"], str(tmp_path / "out")
            )

    def test_missing_variable(self, tmp_path, groups):
        """Test a variable absent from one group halts the stage."""
        with pytest.raises(MissingInputError) as excinfo:
            composite_difference(groups[0], groups[1], ["pr"], str(tmp_path / "out"))
        assert "No files matching 'pr'" in str(excinfo.value)

    def test_missing_directory(self, tmp_path, groups):
        """Test a missing group directory halts the stage."""
        with pytest.raises(MissingInputError):
            composite_difference(
                groups[0], str(tmp_path / "absent"), ["ts"], str(tmp_path / "out")
            )

    def test_group_file_with_bounds(self, tmp_path, make_field):
        """Test group files carrying lat_bnds are read through the matched variable."""
        ds = make_field(295.0, name="ts").to_dataset()
        edges = np.stack([ds.lat.values - 2.5, ds.lat.values + 2.5], axis=1)
        ds["lat_bnds"] = (("lat", "bnds"), edges)
        path = str(tmp_path / "ts_CESM2.nc")
        ds.to_netcdf(path)

        mean = group_mean([path], "ts")
        assert mean.name == "ts"
        np.testing.assert_allclose(mean.values, 295.0)

    def test_group_file_renamed_variable(self, tmp_path, make_field):
        """Test a file whose only data variable differs from the matched name still loads."""
        ds = make_field(3.0, name="swcre").to_dataset()
        ds["lon_bnds"] = (("lon", "bnds"), np.zeros((ds.sizes["lon"], 2)))
        path = str(tmp_path / "sfc-swcre_MIROC6.nc")
        ds.to_netcdf(path)

        np.testing.assert_allclose(group_mean([path], "sfc-swcre").values, 3.0)

    def test_group_mean(self, groups):
        """Test the ensemble mean of one group's files."""
        files = find_variable_files(groups[1], "ts")
        np.testing.assert_allclose(group_mean(files, "ts").values, 293.0)
