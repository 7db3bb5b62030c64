import cv2
import pytest

from lanternslam.config import SystemConfig, load_config, PLUGIN_NO_MOVEMENT_SCALE
from lanternslam.errors import ConfigError


def test_defaults():
    config = SystemConfig()
    assert config.ratio_thresh == 0.5
    assert config.min_3d_points == 6
    assert config.frames_until_loop_closure == 200
    assert config.max_good_features == 1000
    assert config.no_movement_thresh == pytest.approx(0.5 / 10000)


def test_from_dict_accepts_both_naming_styles():
    config = SystemConfig.from_dict({"ratioTresh": "0.7", "min_depth": 0.2, "min3DPoints": 8.0})
    assert config.ratio_thresh == 0.7
    assert config.min_depth == 0.2
    assert config.min_3d_points == 8
    assert isinstance(config.min_3d_points, int)


def test_from_dict_rejects_unknown_keys():
    with pytest.raises(ConfigError):
        SystemConfig.from_dict({"ratioThresh": 0.5})


def test_from_dict_rejects_bad_values():
    with pytest.raises(ConfigError):
        SystemConfig.from_dict({"maxDepth": "far"})


@pytest.mark.parametrize("changes", [
    {"ratio_thresh": 0.0},
    {"ratio_thresh": 1.5},
    {"min_depth": 2.0, "max_depth": 1.0},
    {"max_distance_f2f": 0.0},
    {"min_3d_points": -1},
    {"no_movement_thresh": -0.1},
])
def test_invalid_values_raise(changes):
    with pytest.raises(ConfigError):
        SystemConfig().replace(**changes)


def test_config_error_is_value_error():
    with pytest.raises(ValueError):
        SystemConfig(ratio_thresh=2.0)


def test_plugin_units_are_rescaled():
    config = SystemConfig.from_plugin_units({"noMovementThresh": 5.0})
    assert config.no_movement_thresh == pytest.approx(5.0 / PLUGIN_NO_MOVEMENT_SCALE)


def test_plugin_units_keep_default_threshold():
    config = SystemConfig.from_plugin_units({"ratioTresh": 0.5})
    assert config.no_movement_thresh == SystemConfig().no_movement_thresh


def test_to_dict_round_trip():
    config = SystemConfig(max_good_features=200)
    assert SystemConfig.from_dict(config.to_dict()) == config


def test_load_config(tmp_path):
    path = str(tmp_path / "params.yml")
    fs = cv2.FileStorage(path, cv2.FILE_STORAGE_WRITE)
    fs.write("ratioTresh", 0.6)
    fs.write("max_depth", 4.0)
    fs.write("framesNoMovement", 10)
    fs.release()

    config = load_config(path)

    assert config.ratio_thresh == pytest.approx(0.6)
    assert config.max_depth == 4.0
    assert config.frames_no_movement == 10
    assert config.min_3d_points == 6


def test_load_missing_config(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yml")
