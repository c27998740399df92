"""
Tests for connected component labeling and the component size table.
"""

import numpy as np
import pytest

from rastersieve.connectivity import Adjacency
from rastersieve.errors import ShapeMismatchError
from rastersieve.labeling import (
    as_foreground,
    component_sizes,
    label_components,
    label_components_tiled,
)
from rastersieve.cste import CellState

from conftest import same_partition

BACKENDS = ["skimage", "scipy", "opencv", "flood"]


class TestAdjacency:

    @pytest.mark.parametrize("value, expected", [
        ("rook", Adjacency.ROOK), ("QUEEN", Adjacency.QUEEN),
        (4, Adjacency.ROOK), ("8", Adjacency.QUEEN), (Adjacency.ROOK, Adjacency.ROOK),
    ])
    def test_parse(self, value, expected):
        assert Adjacency.parse(value) is expected

    @pytest.mark.parametrize("value", ["bishop", 6, True, None])
    def test_parse_rejects_unknown(self, value):
        with pytest.raises(ValueError):
            Adjacency.parse(value)

    def test_neighbour_counts(self):
        assert len(Adjacency.ROOK.offsets) == 4
        assert len(Adjacency.QUEEN.offsets) == 8
        assert Adjacency.ROOK.structure.sum() == 5
        assert Adjacency.QUEEN.structure.sum() == 9


class TestForeground:

    def test_boolean_grid(self):
        grid = np.array([[True, False]])
        assert np.array_equal(as_foreground(grid), grid)

    def test_state_grid(self):
        grid = np.array([[CellState.FOREGROUND, CellState.BACKGROUND, CellState.NODATA]], dtype=np.int8)
        assert as_foreground(grid).tolist() == [[True, False, False]]

    def test_codes(self):
        grid = np.array([[1, 2, 3], [2, 2, 4]])
        assert as_foreground(grid, 2).tolist() == [[False, True, False], [True, True, False]]
        assert as_foreground(grid, [3, 4]).tolist() == [[False, False, True], [False, False, True]]

    def test_predicate(self):
        grid = np.arange(6).reshape(2, 3)
        assert as_foreground(grid, lambda g: g > 3).sum() == 2

    def test_predicate_shape_mismatch(self):
        grid = np.zeros((3, 3))
        with pytest.raises(ShapeMismatchError):
            as_foreground(grid, lambda g: g[:2] > 0)

    def test_rejects_non_2d(self):
        with pytest.raises(ValueError):
            as_foreground(np.zeros((2, 2, 2), dtype=bool))


class TestLabelComponents:

    @pytest.mark.parametrize("backend", BACKENDS)
    def test_empty_grid(self, backend):
        labels, n = label_components(np.zeros((4, 5), dtype=bool), backend=backend)
        assert n == 0
        assert labels.shape == (4, 5)
        assert not labels.any()

    @pytest.mark.parametrize("backend", BACKENDS)
    def test_diagonal_pair(self, backend):
        """A diagonal pair is one component under queen, two under rook."""
        grid = np.zeros((3, 3), dtype=bool)
        grid[0, 0] = grid[1, 1] = True

        labels_queen, n_queen = label_components(grid, Adjacency.QUEEN, backend=backend)
        labels_rook, n_rook = label_components(grid, Adjacency.ROOK, backend=backend)

        assert n_queen == 1
        assert labels_queen[0, 0] == labels_queen[1, 1]
        assert n_rook == 2
        assert labels_rook[0, 0] != labels_rook[1, 1]
        assert component_sizes(labels_rook) == {1: 1, 2: 1}

    @pytest.mark.parametrize("backend", BACKENDS)
    def test_labels_are_consecutive(self, backend, random_grids):
        for grid in random_grids:
            labels, n = label_components(grid, "queen", backend=backend)
            assert labels.dtype == np.int32
            assert set(np.unique(labels[grid]).tolist()) == set(range(1, n + 1))
            assert not labels[~grid].any()

    @pytest.mark.parametrize("adjacency", ["rook", "queen"])
    def test_backends_agree(self, adjacency, random_grids):
        for grid in random_grids:
            reference, n_ref = label_components(grid, adjacency, backend="flood")
            for backend in BACKENDS[:-1]:
                labels, n = label_components(grid, adjacency, backend=backend)
                assert n == n_ref
                assert same_partition(labels, reference)

    @pytest.mark.parametrize("adjacency", ["rook", "queen"])
    def test_partition_property(self, adjacency, random_grids):
        for grid in random_grids:
            labels, _ = label_components(grid, adjacency)
            assert sum(component_sizes(labels).values()) == int(grid.sum())

    def test_edge_cells_do_not_wrap(self):
        grid = np.zeros((3, 4), dtype=bool)
        grid[:, 0] = True
        grid[:, 3] = True
        _, n = label_components(grid, "queen")
        assert n == 2

    def test_ring_is_one_component(self):
        grid = np.ones((5, 5), dtype=bool)
        grid[1:4, 1:4] = False
        labels, n = label_components(grid, "rook")
        assert n == 1
        assert component_sizes(labels) == {1: 16}

    def test_thematic_grid_with_code(self):
        grid = np.array([
            [2, 2, 1, 2],
            [1, 1, 1, 2],
            [2, 1, 3, 3],
        ])
        labels, n = label_components(grid, "rook", foreground=2)
        assert n == 3
        assert sorted(component_sizes(labels).values()) == [1, 2, 2]

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            label_components(np.ones((2, 2), dtype=bool), backend="gdal")

    def test_input_is_not_modified(self, scenario_grid):
        before = scenario_grid.copy()
        label_components(scenario_grid, "queen")
        assert np.array_equal(scenario_grid, before)


class TestComponentSizes:

    def test_counts(self):
        labels = np.array([[0, 1, 1], [2, 0, 1], [2, 3, 0]])
        assert component_sizes(labels) == {1: 3, 2: 2, 3: 1}

    def test_no_background_entry(self):
        assert 0 not in component_sizes(np.array([[0, 0], [0, 1]]))

    def test_empty(self):
        assert component_sizes(np.zeros((3, 3), dtype=np.int32)) == {}
        assert component_sizes(np.zeros((0, 3), dtype=np.int32)) == {}

    def test_recomputation_is_identical(self, random_grids):
        labels, _ = label_components(random_grids[4], "queen")
        assert component_sizes(labels) == component_sizes(labels.copy())

    def test_negative_labels(self):
        with pytest.raises(ValueError):
            component_sizes(np.array([[-1, 0]]))


class TestTiledLabeling:

    @pytest.mark.parametrize("adjacency", ["rook", "queen"])
    @pytest.mark.parametrize("tile_shape", [(1, 1), (3, 4), (7, 5), (64, 64)])
    def test_matches_untiled(self, adjacency, tile_shape, random_grids):
        for grid in random_grids:
            expected, n_expected = label_components(grid, adjacency)
            labels, n = label_components_tiled(grid, adjacency, tile_shape=tile_shape)
            assert n == n_expected
            assert same_partition(labels, expected)

    def test_diagonal_across_tile_corner(self):
        grid = np.zeros((4, 4), dtype=bool)
        grid[1, 1] = grid[2, 2] = True
        _, n_queen = label_components_tiled(grid, "queen", tile_shape=(2, 2))
        _, n_rook = label_components_tiled(grid, "rook", tile_shape=(2, 2))
        assert n_queen == 1
        assert n_rook == 2

    def test_component_spanning_many_tiles(self):
        grid = np.zeros((9, 9), dtype=bool)
        grid[4, :] = True
        grid[:, 4] = True
        labels, n = label_components_tiled(grid, "rook", tile_shape=(2, 3))
        assert n == 1
        assert component_sizes(labels) == {1: 17}

    def test_process_pool(self, random_grids):
        grid = random_grids[5]
        expected, n_expected = label_components(grid, "queen")
        labels, n = label_components_tiled(grid, "queen", tile_shape=(10, 10), n_jobs=2)
        assert n == n_expected
        assert same_partition(labels, expected)

    def test_invalid_tile_shape(self):
        with pytest.raises(ValueError):
            label_components_tiled(np.ones((3, 3), dtype=bool), tile_shape=(0, 3))
