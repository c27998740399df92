"""
Tests for the thematic class binder (class lookup / raster attribute table).
"""

import numpy as np
import pandas as pd
import pytest

from rastersieve.cste import CellState, ClassInfo, DataPath
from rastersieve.errors import InvalidCodeError
from rastersieve.thematic import ThematicClassBinder


LOOKUP = {1: "cropland", 2: "forest", 3: "wetland"}


@pytest.fixture
def binder():
    return ThematicClassBinder(LOOKUP, nodata=0)


@pytest.fixture
def grid():
    return np.array([
        [1, 2, 2, 0],
        [3, 2, 1, 0],
        [1, 1, 3, 3],
    ])


class TestLookup:

    def test_names(self, binder):
        assert binder.name_of(2) == "forest"
        assert binder.codes == [1, 2, 3]
        assert len(binder) == 3

    def test_unknown_code(self, binder):
        with pytest.raises(InvalidCodeError) as excinfo:
            binder.name_of(4)
        assert excinfo.value.codes == [4]

    def test_names_need_not_be_unique(self):
        binder = ThematicClassBinder({41: "forest", 42: "forest", 43: "forest", 82: "cropland"})
        assert binder.codes_for("forest") == [41, 42, 43]
        assert binder.codes_for("desert") == []

    def test_codes_must_be_integers(self):
        with pytest.raises(ValueError):
            ThematicClassBinder({"1": "cropland"})
        with pytest.raises(ValueError):
            ThematicClassBinder({1.5: "cropland"})

    def test_nodata_cannot_be_a_class(self):
        with pytest.raises(ValueError):
            ThematicClassBinder(LOOKUP, nodata=1)

    def test_default_binder(self):
        binder = ThematicClassBinder.default(nodata=0)
        assert binder.name_of(ClassInfo.FOREST_CODE) == "forest"
        assert set(binder.colors) == set(ClassInfo.CLASS_NAMES)


class TestValidate:

    def test_lookup_integrity(self):
        """A grid holding code 4 fails against {1, 2, 3}."""
        binder = ThematicClassBinder(LOOKUP)
        grid = np.array([[1, 2], [3, 4]])
        with pytest.raises(InvalidCodeError) as excinfo:
            binder.validate(grid)
        assert excinfo.value.codes == [4]

    def test_nodata_is_not_invalid(self, binder, grid):
        binder.validate(grid)

    def test_nodata_without_declaration_is_invalid(self, grid):
        with pytest.raises(InvalidCodeError):
            ThematicClassBinder(LOOKUP).validate(grid)


class TestExtractMask:

    def test_single_code(self, binder, grid):
        mask = binder.extract_mask(grid, 2)
        assert mask.dtype == bool
        assert mask.tolist() == [
            [False, True, True, False],
            [False, True, False, False],
            [False, False, False, False],
        ]

    def test_several_codes(self, binder, grid):
        mask = binder.extract_mask(grid, [1, 3])
        assert mask.sum() == 7

    def test_named_mask(self, binder, grid):
        assert np.array_equal(binder.extract_named_mask(grid, "forest"), binder.extract_mask(grid, 2))
        with pytest.raises(ValueError):
            binder.extract_named_mask(grid, "desert")

    def test_unknown_query_code(self, binder, grid):
        with pytest.raises(InvalidCodeError):
            binder.extract_mask(grid, 4)

    def test_invalid_grid_code_raises(self, binder, grid):
        grid = grid.copy()
        grid[2, 3] = 9
        with pytest.raises(InvalidCodeError) as excinfo:
            binder.extract_mask(grid, 2)
        assert excinfo.value.codes == [9]

    def test_invalid_grid_code_as_background(self, binder, grid):
        grid = grid.copy()
        grid[1, 1] = 9
        mask = binder.extract_mask(grid, 2, on_invalid="background")
        assert not mask[1, 1]
        assert mask.sum() == 2

    def test_unknown_policy(self, binder, grid):
        with pytest.raises(ValueError):
            binder.extract_mask(grid, 2, on_invalid="ignore")

    def test_keep_nodata_state_grid(self, binder, grid):
        states = binder.extract_mask(grid, 2, keep_nodata=True)
        assert states.dtype == np.int8
        assert states.tolist() == [
            [0, 1, 1, -1],
            [0, 1, 0, -1],
            [0, 0, 0, 0],
        ]
        assert (states == CellState.NODATA).sum() == 2


class TestAttributeTable:

    def test_to_names(self, binder, grid):
        names = binder.to_names(grid)
        assert names[0, 1] == "forest"
        assert names[1, 0] == "wetland"
        assert names[0, 3] is None

    def test_counts(self, binder, grid):
        table = binder.attribute_table(grid)
        assert list(table.columns) == ['code', 'name', 'count']
        assert table['code'].tolist() == [1, 2, 3]
        assert table['count'].tolist() == [4, 3, 3]

    def test_area_column(self, binder, grid):
        table = binder.attribute_table(grid, cell_area=900.0)
        assert table.loc[table['name'] == 'forest', 'area'].item() == 2700.0

    def test_class_absent_from_grid(self, grid):
        binder = ThematicClassBinder({**LOOKUP, 4: "water"}, nodata=0)
        table = binder.attribute_table(grid)
        assert table.loc[table['code'] == 4, 'count'].item() == 0

    def test_csv_persistence(self, binder, tmp_path):
        csv_path = tmp_path / "lookup.csv"
        binder.to_csv(str(csv_path))
        assert pd.read_csv(csv_path).columns.tolist() == ['code', 'name', 'red', 'green', 'blue']

        loaded = ThematicClassBinder.from_csv(str(csv_path), nodata=0)
        assert loaded.lookup == LOOKUP
        assert loaded.nodata == 0
        assert loaded.colors == {}

    def test_csv_keeps_colors(self, tmp_path):
        csv_path = tmp_path / "meta" / "lookup.csv"
        binder = ThematicClassBinder(LOOKUP, colors={2: [20, 120, 40], 3: [110, 180, 170]})
        binder.to_csv(str(csv_path))

        loaded = ThematicClassBinder.from_csv(str(csv_path))
        assert loaded.colors == {2: [20, 120, 40], 3: [110, 180, 170]}

    def test_csv_default_path(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        ThematicClassBinder.default().to_csv()
        assert (tmp_path / DataPath.CSV_ATTRIBUTE_TABLE).exists()
        assert ThematicClassBinder.from_csv().lookup == ClassInfo.CLASS_NAMES

    def test_csv_code_name_only(self, tmp_path):
        csv_path = tmp_path / "lookup.csv"
        pd.DataFrame({'code': [1, 2], 'name': ['cropland', 'forest']}).to_csv(csv_path, index=False)
        loaded = ThematicClassBinder.from_csv(str(csv_path))
        assert loaded.lookup == {1: 'cropland', 2: 'forest'}
        assert loaded.colors == {}

    def test_csv_duplicated_codes(self, tmp_path):
        csv_path = tmp_path / "lookup.csv"
        pd.DataFrame({'code': [1, 1], 'name': ['a', 'b']}).to_csv(csv_path, index=False)
        with pytest.raises(ValueError):
            ThematicClassBinder.from_csv(str(csv_path))
