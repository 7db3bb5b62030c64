import cv2
import matplotlib
import matplotlib.pyplot as plt
import numpy as np


class Visualizer:
    def __init__(self, show=False):
        """
        Debug plots and overlays.
        :param show: Call plt.show() after plotting (interactive use).
        """
        self.show = show

    def plot_keyframe_trajectory(self, keyframe_store):
        """
        Plots the keyframe world translations in the XZ plane.
        :param keyframe_store: KeyframeStore to plot.
        :return: The matplotlib Figure.
        """
        keyframes = keyframe_store.keyframes()
        positions = np.array([kf.world_translation for kf in keyframes], dtype=np.float64).reshape(-1, 3)

        fig, ax = plt.subplots(figsize=(10, 8))
        ax.plot(positions[:, 0], positions[:, 2], c='red', label="Keyframe trajectory")
        ax.scatter(positions[:, 0], positions[:, 2], c='blue', s=20)
        for kf, (x, _, z) in zip(keyframes, positions):
            ax.annotate(f"{kf.id}: {kf.image_name}", (x, z), fontsize=8)
        ax.set_title("Keyframe Trajectory")
        ax.set_xlabel("X (m)")
        ax.set_ylabel("Z (m)")
        ax.axis('equal')
        ax.legend()
        ax.grid()
        if self.show and matplotlib.get_backend().lower() != 'agg':
            plt.show()
        return fig

    def draw_correspondences(self, image, pts_query, pts_ref):
        """
        Draws matched pixels on a copy of the colour image: a circle at each
        reference point and a line to its query point.
        :param image: BGR or grayscale image.
        :param pts_query: (N, 2) current-frame points.
        :param pts_ref: (N, 2) reference points.
        :return: The annotated BGR image.
        """
        canvas = image.copy() if image.ndim == 3 else cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        pts_query = np.asarray(pts_query, dtype=np.float64).reshape(-1, 2)
        pts_ref = np.asarray(pts_ref, dtype=np.float64).reshape(-1, 2)
        for (qx, qy), (rx, ry) in zip(pts_query, pts_ref):
            ref = (int(round(rx)), int(round(ry)))
            cv2.line(canvas, ref, (int(round(qx)), int(round(qy))), (0, 255, 0), 1)
            cv2.circle(canvas, ref, 3, (0, 0, 255), -1)
        return canvas
