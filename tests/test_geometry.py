import numpy as np

from ghostclip.geometry import BoundingBox, auto_crop, find_bounding_box, pad_box
from ghostclip.raster import RasterImage

from helpers import GREEN, blob, solid


def test_opaque_image_box_is_full_bounds():
    img = solid(40, 30)
    box = find_bounding_box(img)
    assert box == BoundingBox(top=0, bottom=29, left=0, right=39)
    # padding clamps at the edges
    assert pad_box(box, 40, 30) == box
    cropped = auto_crop(img)
    assert cropped.size == (40, 30)
    assert np.array_equal(cropped.pixels, img.pixels)


def test_transparent_image_is_returned_untouched():
    img = RasterImage.blank(20, 10)
    assert not find_bounding_box(img).is_valid
    assert auto_crop(img) is img


def test_crop_pads_two_percent_per_axis():
    img = blob(200, 100, (20, 69, 50, 149))
    box = find_bounding_box(img)
    assert (box.top, box.bottom, box.left, box.right) == (20, 69, 50, 149)

    # 99 * 0.02 -> 2px horizontally, 49 * 0.02 -> 1px vertically
    padded = pad_box(box, 200, 100)
    assert (padded.top, padded.bottom, padded.left, padded.right) == (19, 70, 48, 151)

    cropped = auto_crop(img)
    assert cropped.size == (104, 52)
    assert (cropped.pixels[1:51, 2:102] == GREEN).all()
    assert cropped.alpha[0].max() == 0
    assert cropped.alpha[:, :2].max() == 0


def test_half_pixel_padding_rounds_up():
    # span 25 -> 0.5px -> 1
    img = blob(100, 10, (5, 5, 10, 35))
    assert auto_crop(img).size == (28, 1)


def test_faint_alpha_counts_as_opaque():
    img = RasterImage.blank(10, 10)
    img.pixels[7, 3] = (0, 0, 0, 1)
    cropped = auto_crop(img)
    assert cropped.size == (1, 1)
    assert cropped.pixels[0, 0, 3] == 1


def test_crop_is_a_copy():
    img = blob(10, 10, (2, 5, 2, 5))
    cropped = auto_crop(img)
    cropped.pixels[...] = 0
    assert img.alpha.max() == 255
