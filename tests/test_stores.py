import numpy as np
import pytest
import cv2
from scipy.spatial.transform import Rotation

from lanternslam.core.keyframe_store import KeyframeStore
from lanternslam.core.object_store import ObjectStore
from lanternslam.errors import StoreIndexError

from conftest import FakeDetector, grid_positions, random_descriptors


def add_keyframe(store, name="By Hand", seed=0, n_features=5):
    rng = np.random.default_rng(seed)
    return store.add_keyframe(
        frame=rng.integers(0, 256, size=(12, 16), dtype=np.uint8),
        descriptors=random_descriptors(n_features, seed),
        keypoints=rng.uniform(0, 100, size=(n_features, 2)).astype(np.float32),
        world_rotation=Rotation.from_rotvec(rng.normal(size=3) * 0.2).as_matrix(),
        world_translation=rng.normal(size=3),
        image_name=name,
        relative_rotation=Rotation.from_rotvec(rng.normal(size=3) * 0.1).as_matrix(),
        relative_translation=rng.normal(size=3) * 0.1,
    )


def test_keyframe_ids_are_sequential():
    store = KeyframeStore()
    ids = [add_keyframe(store, seed=i).id for i in range(3)]
    assert ids == [0, 1, 2]
    assert store.get_keyframe(1).id == 1
    assert store.get_last_keyframe().id == 2
    assert len(store) == 3


def test_keyframe_ids_not_reused_after_clear():
    store = KeyframeStore()
    add_keyframe(store)
    add_keyframe(store)
    store.clear()
    assert len(store) == 0
    assert store.get_last_keyframe() is None
    assert add_keyframe(store).id == 2


def test_unknown_keyframe_id_raises():
    store = KeyframeStore()
    add_keyframe(store)
    with pytest.raises(StoreIndexError):
        store.get_keyframe(5)
    with pytest.raises(IndexError):
        store.get_keyframe(-1)


def test_keyframes_are_read_only():
    keyframe = add_keyframe(KeyframeStore())
    with pytest.raises(ValueError):
        keyframe.world_translation[0] = 1.0


@pytest.mark.parametrize("extension", [".yml", ".xml"])
def test_save_load_round_trip(tmp_path, extension):
    store = KeyframeStore()
    originals = [add_keyframe(store, name, seed)
                 for seed, name in enumerate(["First Frame", "By Hand", "mug"])]
    path = tmp_path / f"keyframes{extension}"

    store.save(path)
    loaded_store = KeyframeStore()
    loaded_store.load(path)

    loaded = loaded_store.keyframes()
    assert [kf.id for kf in loaded] == [0, 1, 2]
    for original, copy in zip(originals, loaded):
        assert copy.image_name == original.image_name
        np.testing.assert_array_equal(copy.frame, original.frame)
        assert copy.frame.dtype == np.uint8
        np.testing.assert_array_equal(copy.descriptors, original.descriptors)
        np.testing.assert_array_equal(copy.keypoints, original.keypoints)
        np.testing.assert_allclose(copy.world_rotation, original.world_rotation, rtol=0, atol=1e-12)
        np.testing.assert_allclose(copy.world_translation, original.world_translation, rtol=0, atol=1e-12)
        np.testing.assert_allclose(copy.relative_rotation, original.relative_rotation, rtol=0, atol=1e-12)
        np.testing.assert_allclose(copy.relative_translation, original.relative_translation, rtol=0, atol=1e-12)
    # New keyframes continue after the loaded ids
    assert add_keyframe(loaded_store).id == 3


def test_round_trip_keyframe_without_features(tmp_path):
    store = KeyframeStore()
    store.add_keyframe(np.zeros((4, 4), dtype=np.uint8), None, np.empty((0, 2)),
                       np.eye(3), np.zeros(3), "First Frame", np.eye(3), np.zeros(3))
    path = tmp_path / "empty.yml"
    store.save(path)
    loaded = KeyframeStore()
    loaded.load(path)
    keyframe = loaded.get_keyframe(0)
    assert keyframe.descriptors.shape == (0, 32)
    assert keyframe.keypoints.shape == (0, 2)


def test_load_missing_file_raises(tmp_path):
    with pytest.raises(IOError):
        KeyframeStore().load(tmp_path / "missing.yml")


def test_object_removal_tombstones_slot():
    store = ObjectStore()
    a = store.add_object(np.zeros((4, 4), np.uint8), random_descriptors(5, 1), grid_positions(5), "a")
    b = store.add_object(np.zeros((4, 4), np.uint8), random_descriptors(5, 2), grid_positions(5), "b")

    store.remove_object(a.id)

    assert len(store) == 1
    assert [obj.name for obj in store.objects()] == ["b"]
    assert store.get_object(b.id) is b
    with pytest.raises(StoreIndexError):
        store.get_object(a.id)
    with pytest.raises(StoreIndexError):
        store.remove_object(a.id)
    c = store.add_object(np.zeros((4, 4), np.uint8), None, np.empty((0, 2)), "c")
    assert c.id == 2


def test_object_from_bytes(detector):
    store = ObjectStore()
    image = np.full((60, 80, 3), 200, dtype=np.uint8)
    ok, encoded = cv2.imencode(".png", image)
    assert ok

    obj = store.add_from_bytes(encoded.tobytes(), "poster", detector)

    assert obj.name == "poster"
    assert obj.frame.shape == (60, 80)
    assert len(obj.keypoints) == 40
    assert obj.descriptors.shape == (40, 32)


def test_object_from_invalid_bytes_is_ignored(detector):
    store = ObjectStore()
    assert store.add_from_bytes(b"", "empty", detector) is None
    assert store.add_from_bytes(b"not an image", "junk", detector) is None
    assert len(store) == 0
