import numpy as np
import json
import os
from typing import Any, Dict, List, Optional, Sequence, Tuple

from geomosaic.core.shapes import SHAPE_TYPES, Shape, create_shape


def results_to_dict(
    results: Sequence[Any],
    width: int,
    height: int,
    background: Optional[Sequence[int]] = None,
) -> Dict[str, Any]:
    """
    Converts committed shape results into a JSON-serializable dictionary

    :param results: ShapeResult values in commit order
    :type results: Sequence[ShapeResult]
    :param width: Width of the image the shapes were fitted to
    :type width: int
    :param height: Height of the image the shapes were fitted to
    :type height: int
    :param background: Optional (r, g, b, a) canvas background the run started from
    :type background: Optional[Sequence[int]]
    :return: {"width", "height", "background", "shapes": [{"type", "data", "color", "score"}]}
    :rtype: Dict[str, Any]
    """
    return {
        "width": int(width),
        "height": int(height),
        "background": [int(v) for v in background] if background is not None else None,
        "shapes": [
            {
                "type": result.shape.type_tag(),
                "data": result.shape.raw_parameters(),
                "color": [int(v) for v in result.color],
                "score": float(result.score),
            }
            for result in results
        ],
    }


def shapes_to_array(results: Sequence[Any]) -> np.ndarray:
    """
    Packs the raw parameters of committed shapes into an (N x P) int32 array

    Rows shorter than the longest parameter list are padded with -1

    :param results: ShapeResult values in commit order
    :type results: Sequence[ShapeResult]
    :return: The parameter matrix, (0 x 0) when there are no results
    :rtype: np.ndarray
    """
    rows = [result.shape.raw_parameters() for result in results]
    width = max((len(row) for row in rows), default=0)
    array = np.full((len(rows), width), -1, dtype=np.int32)
    for i, row in enumerate(rows):
        array[i, : len(row)] = row
    return array


def save_results_and_shapes(
    results_filepath_base: str,
    results_data: Dict[str, Any],
    shapes_array: Optional[np.ndarray] = None,
    save_shape_data_flag: bool = False,
) -> Tuple[Optional[str], Optional[str]]:
    """
    Saves results data to a JSON file and optionally saves shape data to an NPY file

    The NPY filename is derived from the JSON filename and stored within the JSON data
    if shapes are saved

    :param results_filepath_base: The base path and filename without extension for the results JSON
    :type results_filepath_base: str
    :param results_data: Dictionary containing results and metadata to be saved in JSON
    :type results_data: Dict[str, Any]
    :param shapes_array: The NumPy array of shape parameters (N x P), if saving
    :type shapes_array: Optional[np.ndarray]
    :param save_shape_data_flag: Boolean indicating if `shapes_array` should be saved to an NPY file
    :type save_shape_data_flag: bool
    :return: A tuple containing (path_to_saved_json, path_to_saved_npy)
             Paths can be None if saving respective file failed or was not requested
    :rtype: Tuple[Optional[str], Optional[str]]
    """
    json_filepath = f"{results_filepath_base}.json"
    npy_filepath = None

    results_data_to_save = dict(results_data)

    if save_shape_data_flag and shapes_array is not None:
        npy_filename = f"{os.path.basename(results_filepath_base)}_shapes.npy"
        results_data_to_save["shape_data_file"] = npy_filename
        npy_filepath = os.path.join(os.path.dirname(results_filepath_base), npy_filename)
    else:
        results_data_to_save["shape_data_file"] = None

    try:
        with open(json_filepath, "w") as f:
            json.dump(results_data_to_save, f, indent=4)
        print(f"Saved results to: {json_filepath}")
    except OSError as e:
        print(f"Error saving results JSON file {json_filepath}: {e}")
        return None, None

    if npy_filepath is None:
        return json_filepath, None

    try:
        np.save(npy_filepath, shapes_array)
        print(f"Saved shape data to: {npy_filepath}")
    except OSError as e:
        print(f"Error saving shape data NPY file {npy_filepath}: {e}")
        return json_filepath, None
    return json_filepath, npy_filepath


def load_results_and_shapes(
    json_filepath: str,
) -> Tuple[Optional[Dict[str, Any]], Optional[np.ndarray]]:
    """
    Loads results data from a JSON file and optionally loads associated shape data from an NPY file

    The NPY file to load is determined by the 'shape_data_file' field within the JSON data

    :param json_filepath: Path to the results JSON file
    :type json_filepath: str
    :return: A tuple containing (loaded_results_data_dict, loaded_shapes_numpy_array)
             Either can be None if loading failed or data was not present
    :rtype: Tuple[Optional[Dict[str, Any]], Optional[np.ndarray]]
    """
    if not os.path.exists(json_filepath):
        print(f"Error: Results JSON file not found: {json_filepath}")
        return None, None

    try:
        with open(json_filepath, "r") as f:
            results_data = json.load(f)
    except json.JSONDecodeError:
        print(f"Error: Invalid JSON in results file: {json_filepath}")
        return None, None
    except OSError as e:
        print(f"Error reading results JSON file {json_filepath}: {e}")
        return None, None

    if not isinstance(results_data, dict):
        print(f"Error: Results file does not contain a JSON object: {json_filepath}")
        return None, None

    npy_filename = results_data.get("shape_data_file")
    if not npy_filename or not isinstance(npy_filename, str):
        return results_data, None

    npy_filepath = os.path.join(os.path.dirname(json_filepath), npy_filename)
    if not os.path.exists(npy_filepath):
        print(f"Warning: Shape data file specified in JSON not found: {npy_filepath}")
        return results_data, None
    try:
        shapes_array = np.load(npy_filepath)
        print(f"Loaded shape data from: {npy_filepath}")
    except (OSError, ValueError) as e:
        print(f"Error loading shape data NPY file {npy_filepath}: {e}")
        return results_data, None
    return results_data, shapes_array


def shape_from_record(
    record: Dict[str, Any], x_bound: int, y_bound: int, rng: np.random.Generator
) -> Shape:
    """
    Rebuilds a shape from a saved {"type", "data"} record

    :param record: Shape record as produced by `results_to_dict`
    :type record: Dict[str, Any]
    :param x_bound: Image width
    :type x_bound: int
    :param y_bound: Image height
    :type y_bound: int
    :param rng: Random generator the shape will use for later mutations
    :type rng: np.random.Generator
    :raises ValueError: If the type is unknown or the data has the wrong length
    :return: The rebuilt shape
    :rtype: Shape
    """
    shape_type = record.get("type")
    if shape_type not in SHAPE_TYPES:
        raise ValueError(f"Unknown shape type in record: {shape_type!r}")
    data = record.get("data")
    if not isinstance(data, list):
        raise ValueError(f"Shape record data must be a list, got {data!r}")
    return create_shape(shape_type, x_bound, y_bound, rng, params=data)


def replay_results(model, records: Sequence[Dict[str, Any]]) -> List[Any]:
    """
    Draws saved shapes onto a model's canvas with their recorded colors

    :param model: Model whose dimensions match the recorded run
    :type model: geomosaic.core.model.Model
    :param records: Shape records as produced by `results_to_dict`
    :type records: Sequence[Dict[str, Any]]
    :raises ValueError: If a record is malformed
    :return: The ShapeResult of every replayed shape, in order
    :rtype: List[ShapeResult]
    """
    # shapes are only drawn, never mutated, so the generator is never consumed
    rng = np.random.default_rng(0)
    results = []
    for record in records:
        shape = shape_from_record(record, model.get_width(), model.get_height(), rng)
        color = record.get("color")
        if color is None:
            raise ValueError(f"Shape record is missing its color: {record!r}")
        results.append(model.draw_shape(shape, color=color))
    return results
