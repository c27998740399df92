"""
Tests for raster and mask input/output.
"""

import numpy as np
import pytest
import rasterio
from PIL import Image
from rasterio.transform import from_origin

from rastersieve.io_utils import RasterMeta, load_classified, load_raster, save_mask, save_raster

from conftest import STACK_NODATA


class TestRasterIO:

    def test_nodata_becomes_nan(self, scene_files, landcover_scene):
        raster_path, _ = scene_files
        expected, _ = landcover_scene
        stack, meta = load_raster(raster_path)

        assert stack.shape == (40, 40, 7)
        assert stack.dtype == np.float32
        assert np.isnan(stack[39]).all()
        assert np.allclose(stack[:39], expected[:39])
        assert meta.nodata == STACK_NODATA

    def test_cell_size(self, scene_files):
        _, meta = load_raster(scene_files[0])
        assert meta.cell_width == 30.0
        assert meta.cell_height == 30.0
        assert meta.cell_area == 900.0

    def test_band_selection(self, scene_files, landcover_scene):
        expected, _ = landcover_scene
        stack, _ = load_raster(scene_files[0], bands=[4, 5])
        assert stack.shape == (40, 40, 2)
        assert np.allclose(stack[:39], expected[:39, :, 3:5])

    def test_classified_keeps_codes(self, scene_files, landcover_scene):
        _, reference = landcover_scene
        grid, meta = load_classified(scene_files[1])
        assert np.issubdtype(grid.dtype, np.integer)
        assert np.array_equal(grid, reference)
        assert meta.nodata == 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_raster(str(tmp_path / "missing.tif"))
        with pytest.raises(FileNotFoundError):
            load_classified(str(tmp_path / "missing.tif"))

    def test_boolean_mask_written_as_uint8(self, tmp_path):
        mask = np.zeros((5, 6), dtype=bool)
        mask[1:3, 2:5] = True
        meta = RasterMeta(transform=from_origin(0.0, 100.0, 10.0, 10.0))
        path = str(tmp_path / "out" / "mask.tif")
        save_raster(mask, path, meta)

        with rasterio.open(path) as src:
            assert src.dtypes == ('uint8',)
            assert src.transform == meta.transform
            assert src.read(1).sum() == 6

    def test_profile_is_inherited(self, scene_files, tmp_path):
        stack, meta = load_raster(scene_files[0])
        path = str(tmp_path / "ndvi_class.tif")
        save_raster(np.ones((40, 40), dtype=np.int32), path, meta, nodata=0)

        grid, out_meta = load_classified(path)
        assert grid.shape == (40, 40)
        assert out_meta.transform == meta.transform
        assert out_meta.nodata == 0

    def test_rejects_bad_shapes(self, tmp_path):
        with pytest.raises(ValueError):
            save_raster(np.zeros(5), str(tmp_path / "bad.tif"))


def test_save_mask_png(tmp_path):
    mask = np.array([[0, 1], [2, 5]], dtype=np.int32)
    path = str(tmp_path / "masks" / "mask.png")
    save_mask(mask, path)

    with Image.open(path) as img:
        assert np.array_equal(np.array(img), mask.astype(np.uint8))
