import matplotlib.image as mpimg
import numpy as np
import pytest

from steadyflow import InvalidDimension, create_grid_from_mask
from steadyflow.mask import circle_mask, image_to_mask, load_mask


def _rgba(height, width):
    return np.zeros((height, width, 4), dtype=np.uint8)


def test_opaque_pixels_become_obstacles():
    img = _rgba(4, 4)
    img[:2, :2, 3] = 255
    mask = image_to_mask(img, 2, 2)
    assert mask.tolist() == [[True, False], [False, False]]


def test_alpha_threshold_is_strict():
    img = _rgba(1, 3)
    img[0, :, 3] = [128, 129, 0]
    assert image_to_mask(img, 3, 1).tolist() == [[False, True, False]]


def test_float_images_are_scaled():
    img = np.zeros((2, 2, 4), dtype=np.float32)
    img[0, 0, 3] = 0.6    # 153 on the byte scale
    img[1, 1, 3] = 0.4    # 102
    assert image_to_mask(img, 2, 2).tolist() == [[True, False], [False, False]]


def test_image_without_alpha_is_opaque():
    img = np.zeros((3, 3, 3), dtype=np.uint8)
    assert image_to_mask(img, 2, 2).all()


def test_upsampling_uses_nearest_pixel():
    img = _rgba(2, 2)
    img[0, 1, 3] = 255
    mask = image_to_mask(img, 4, 4)
    assert mask[0].tolist() == [False, False, True, True]
    assert mask[1].tolist() == [False, False, True, True]
    assert not mask[2:].any()


def test_non_positive_grid_size_rejected():
    with pytest.raises(InvalidDimension):
        image_to_mask(_rgba(2, 2), 0, 2)


def test_load_mask_from_png(tmp_path):
    img = np.zeros((8, 8, 4), dtype=np.float32)
    img[2:6, 2:6] = 1.0
    path = tmp_path / "obstacle.png"
    mpimg.imsave(path, img)

    mask = load_mask(path, 4, 4)

    assert mask.shape == (4, 4)
    assert mask[1:3, 1:3].all()
    assert not mask[0].any()
    create_grid_from_mask(mask)


def test_circle_mask():
    mask = circle_mask(20, 10, cx=0.5, cy=0.5, radius=0.3)
    assert mask.shape == (10, 20)
    assert mask[5, 10]
    assert not mask[0, 0]
    assert not mask[5, 0]
