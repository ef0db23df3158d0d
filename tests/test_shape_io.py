"""Tests for saving, loading and replaying results."""

import json

import numpy as np
import pytest

from geomosaic.core.model import Model
from geomosaic.utils.shape_io import (
    load_results_and_shapes,
    replay_results,
    results_to_dict,
    save_results_and_shapes,
    shape_from_record,
    shapes_to_array,
)

SHAPE_TYPES = ["rectangle", "circle", "line", "quadratic_bezier"]


@pytest.fixture
def finished_model(gradient_target):
    """A model with a few committed shapes, and their results."""
    model = Model(gradient_target, (0, 0, 0, 255), num_workers=1, seed=11)
    results = []
    for _ in range(6):
        results.extend(model.step(SHAPE_TYPES, 150, shape_count=6, max_shape_mutations=6, passes=1))
    return model, results


class TestSerialization:
    """Test converting results to plain data."""

    def test_results_to_dict(self, finished_model):
        """Each result records its type, data, color and score."""
        model, results = finished_model
        data = results_to_dict(results, 32, 24, (0, 0, 0, 255))
        assert data["width"] == 32 and data["height"] == 24
        assert data["background"] == [0, 0, 0, 255]
        assert len(data["shapes"]) == 6
        for record, result in zip(data["shapes"], results):
            assert record["type"] == result.shape.type_tag()
            assert record["data"] == result.shape.raw_parameters()
            assert record["color"] == list(result.color)
            assert record["score"] == result.score
        json.dumps(data)

    def test_shapes_to_array_pads(self, finished_model):
        """Shorter parameter lists are padded with -1."""
        _, results = finished_model
        array = shapes_to_array(results)
        longest = max(len(r.shape.raw_parameters()) for r in results)
        assert array.shape == (6, longest)
        for row, result in zip(array, results):
            raw = result.shape.raw_parameters()
            assert row[: len(raw)].tolist() == raw
            assert (row[len(raw) :] == -1).all()

    def test_shapes_to_array_empty(self):
        """No results give an empty array."""
        assert shapes_to_array([]).shape == (0, 0)


class TestSaveLoad:
    """Test writing and reading results files."""

    def test_round_trip_with_shapes(self, finished_model, tmp_path):
        """JSON and NPY files are written and read back."""
        _, results = finished_model
        data = results_to_dict(results, 32, 24, (0, 0, 0, 255))
        array = shapes_to_array(results)
        json_path, npy_path = save_results_and_shapes(
            str(tmp_path / "results"), data, array, save_shape_data_flag=True
        )
        assert json_path.endswith("results.json")
        assert npy_path.endswith("results_shapes.npy")

        loaded, loaded_array = load_results_and_shapes(json_path)
        assert loaded["shape_data_file"] == "results_shapes.npy"
        assert loaded["shapes"] == data["shapes"]
        assert np.array_equal(loaded_array, array)

    def test_without_shapes(self, finished_model, tmp_path):
        """Without the flag only the JSON is written."""
        _, results = finished_model
        json_path, npy_path = save_results_and_shapes(
            str(tmp_path / "results"), results_to_dict(results, 32, 24)
        )
        assert npy_path is None
        loaded, loaded_array = load_results_and_shapes(json_path)
        assert loaded["shape_data_file"] is None
        assert loaded_array is None

    def test_missing_file(self, tmp_path, capsys):
        """A missing file returns None and reports the problem."""
        assert load_results_and_shapes(str(tmp_path / "none.json")) == (None, None)
        assert "not found" in capsys.readouterr().out

    def test_invalid_json(self, tmp_path, capsys):
        """Malformed JSON returns None and reports the problem."""
        path = tmp_path / "bad.json"
        path.write_text("{")
        assert load_results_and_shapes(str(path)) == (None, None)
        assert "Invalid JSON" in capsys.readouterr().out

    def test_missing_npy(self, tmp_path, capsys):
        """A referenced but missing NPY file still returns the JSON data."""
        path = tmp_path / "results.json"
        path.write_text(json.dumps({"shapes": [], "shape_data_file": "gone.npy"}))
        data, array = load_results_and_shapes(str(path))
        assert data["shapes"] == []
        assert array is None
        assert "Warning" in capsys.readouterr().out


class TestReplay:
    """Test rebuilding shapes and canvases from records."""

    def test_replay_reproduces_canvas(self, finished_model, gradient_target, tmp_path):
        """Replaying saved records on a fresh model gives the same canvas and scores."""
        model, results = finished_model
        data = results_to_dict(results, 32, 24, (0, 0, 0, 255))
        json_path, _ = save_results_and_shapes(str(tmp_path / "results"), data)
        loaded, _ = load_results_and_shapes(json_path)

        fresh = Model(gradient_target, loaded["background"], num_workers=1)
        replayed = replay_results(fresh, loaded["shapes"])
        assert np.array_equal(fresh.get_current(), model.get_current())
        assert [r.score for r in replayed] == pytest.approx([r.score for r in results])

    def test_shape_from_record(self, rng):
        """A record rebuilds a shape of the right type."""
        shape = shape_from_record({"type": "circle", "data": [3, 4, 2]}, 10, 10, rng)
        assert shape.type_tag() == "circle"
        assert shape.raw_parameters() == [3, 4, 2]

    @pytest.mark.parametrize(
        "record",
        [
            {"type": "spiral", "data": [1, 2]},
            {"type": "circle", "data": [1, 2]},
            {"type": "circle", "data": "1,2,3"},
        ],
    )
    def test_bad_records(self, rng, record):
        """Unknown types and malformed data are rejected."""
        with pytest.raises(ValueError):
            shape_from_record(record, 10, 10, rng)

    def test_replay_requires_color(self, gradient_target):
        """Records without a color cannot be replayed."""
        model = Model(gradient_target, (0, 0, 0, 255), num_workers=1)
        with pytest.raises(ValueError):
            replay_results(model, [{"type": "circle", "data": [3, 4, 2]}])
