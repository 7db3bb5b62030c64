import matplotlib
matplotlib.use("Agg")

import numpy as np

from lanternslam.core.keyframe_store import KeyframeStore
from lanternslam.utils.visualizer import Visualizer


def test_plot_keyframe_trajectory():
    store = KeyframeStore()
    for i in range(3):
        store.add_keyframe(np.zeros((4, 4), np.uint8), None, np.empty((0, 2)), np.eye(3),
                           [i, 0.0, 2.0 * i], f"kf{i}", np.eye(3), np.zeros(3))

    fig = Visualizer().plot_keyframe_trajectory(store)

    line = fig.axes[0].lines[0]
    np.testing.assert_array_equal(line.get_xdata(), [0, 1, 2])
    np.testing.assert_array_equal(line.get_ydata(), [0, 2, 4])


def test_draw_correspondences_leaves_input_untouched():
    image = np.zeros((50, 50), dtype=np.uint8)
    canvas = Visualizer().draw_correspondences(image, [[10, 10]], [[30, 30]])
    assert canvas.shape == (50, 50, 3)
    assert canvas[30, 30].tolist() == [0, 0, 255]
    assert not image.any()
