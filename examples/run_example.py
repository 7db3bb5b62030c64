import argparse
import logging

import matplotlib.pyplot as plt

from lanternslam import LanternSlam, SystemConfig, load_config
from lanternslam.frontend.tracking import StepOutcome
from lanternslam.utils.camera import Intrinsics, CameraCalibration, SequenceFrameSource
from lanternslam.utils.visualizer import Visualizer

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description='Run LanternSlam on a TUM RGB-D sequence')
    parser.add_argument('--sequence', type=str, required=True, help='Sequence directory with rgb/ and depth/')
    parser.add_argument('--config', type=str, default=None, help='YAML file with tracking parameters')
    parser.add_argument('--keyframes', type=str, default=None, help='Save the keyframes to this file')
    parser.add_argument('--keyframe-every', type=int, default=30, help='Request a keyframe every N frames')
    parser.add_argument('--plot', action='store_true', help='Plot the keyframe trajectory')
    args = parser.parse_args()

    # TUM freiburg1 intrinsics; depth is registered to colour in these sequences
    intrinsics = Intrinsics(640, 480, 517.3, 516.5, 318.6, 255.3,
                            (0.2624, -0.9531, -0.0054, 0.0026, 1.1633))
    calibration = CameraCalibration.aligned(intrinsics)
    config = load_config(args.config) if args.config else SystemConfig()
    source = SequenceFrameSource.from_directory(args.sequence)

    with LanternSlam(source, calibration, config, warmup_frames=0) as slam:
        if not slam.initialize():
            return
        counts = {outcome: 0 for outcome in StepOutcome}
        for i in range(1, len(source)):
            if args.keyframe_every > 0 and i % args.keyframe_every == 0:
                slam.add_keyframe()
            result = slam.step()
            counts[result.outcome] += 1
            if result.is_loop:
                logger.info("Frame %d: loop closed on keyframe %d", i, result.loop_keyframe_id)

        logger.info("Final translation: %s", slam.get_translation())
        logger.info("Final rotation (xyzw): %s", slam.get_rotation_quaternion())
        logger.info("Step outcomes: %s", {k.value: v for k, v in counts.items()})

        if args.keyframes:
            slam.serialize_keyframes(args.keyframes)
        if args.plot:
            Visualizer().plot_keyframe_trajectory(slam.keyframe_store)
            plt.show()


if __name__ == "__main__":
    main()
