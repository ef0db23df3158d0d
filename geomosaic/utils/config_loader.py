import json
import os
from typing import Any, Dict, List

from geomosaic.core.shapes import AVAILABLE_SHAPES

# directory holding the run configurations shipped with the package
DEFAULT_CONFIGS_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "configs"
)

# values used for any field a run configuration leaves out
DEFAULT_RUN_CONFIG: Dict[str, Any] = {
    "shape_types": ["rotated_ellipse"],
    "alpha": 128,
    "shape_count": 500,
    "max_shape_mutations": 100,
    "passes": 1,
    "steps": 200,
    "background": "auto",
    "workers": None,
    "seed": None,
}


def _is_int(value: Any) -> bool:
    # bool is a subclass of int but never a valid count
    return isinstance(value, int) and not isinstance(value, bool)


class ConfigLoader:
    """
    Loads and validates run configurations from JSON files

    A run configuration holds the search settings (shape types, alpha, shape
    count, mutations, passes), the number of steps and the canvas background.
    Configurations are looked up by name in `configs_dir` or loaded from an
    explicit path; missing fields are filled from `DEFAULT_RUN_CONFIG`
    """

    def __init__(self, configs_dir: str = DEFAULT_CONFIGS_DIR):
        """
        Initializes the ConfigLoader

        :param configs_dir: Directory containing named run configurations
        :type configs_dir: str
        """
        self.configs_dir = configs_dir

    def load_run_config(self, name: str) -> Dict[str, Any]:
        """
        Loads the run configuration `{name}.json` from the configs directory

        :param name: Configuration name, without the .json extension
        :type name: str
        :raises FileNotFoundError: If the configuration file is not found
        :raises ValueError: If the JSON is invalid or a field is invalid
        :return: The validated configuration, with defaults filled in
        :rtype: Dict[str, Any]
        """
        filepath = os.path.join(self.configs_dir, f"{name}.json")
        return self.load_config_file(filepath)

    def load_config_file(self, filepath: str) -> Dict[str, Any]:
        """
        Loads and validates a run configuration from an explicit path

        :param filepath: Path to the JSON configuration file
        :type filepath: str
        :raises FileNotFoundError: If the file doesn't exist
        :raises ValueError: If the JSON is invalid or a field is invalid
        :return: The validated configuration, with defaults filled in
        :rtype: Dict[str, Any]
        """
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Could not find run configuration file: {filepath}")

        with open(filepath, "r") as f:
            try:
                config = json.load(f)
            except json.JSONDecodeError:
                raise ValueError(f"Invalid JSON in run configuration file: {filepath}")

        if not isinstance(config, dict):
            raise ValueError(f"Run configuration must be a JSON object: {filepath}")
        try:
            return self.validate_run_config(config)
        except ValueError as e:
            raise ValueError(f"{e}: {filepath}") from e

    def validate_run_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Validates a run configuration dictionary and fills in missing fields

        :param config: Configuration fields, any subset of `DEFAULT_RUN_CONFIG`
        :type config: Dict[str, Any]
        :raises ValueError: If a field is unknown or has an invalid value
        :return: A new dictionary with every field of `DEFAULT_RUN_CONFIG`
        :rtype: Dict[str, Any]
        """
        unknown = [key for key in config if key not in DEFAULT_RUN_CONFIG]
        if unknown:
            raise ValueError(f"Unknown run configuration field(s) {unknown}")

        merged = dict(DEFAULT_RUN_CONFIG)
        merged.update(config)

        shape_types = merged["shape_types"]
        if isinstance(shape_types, str):
            shape_types = [shape_types]
        if not isinstance(shape_types, list) or not shape_types:
            raise ValueError("'shape_types' must be a non-empty list of shape types")
        for shape_type in shape_types:
            if shape_type not in AVAILABLE_SHAPES:
                raise ValueError(
                    f"Invalid shape type '{shape_type}' Must be one of {AVAILABLE_SHAPES}"
                )
        merged["shape_types"] = list(shape_types)

        # (field, minimum, maximum)
        for field, low, high in (
            ("alpha", 1, 255),
            ("shape_count", 1, None),
            ("max_shape_mutations", 0, None),
            ("passes", 1, None),
            ("steps", 1, None),
        ):
            value = merged[field]
            if not _is_int(value):
                raise ValueError(f"'{field}' must be an integer, got {value!r}")
            if value < low or (high is not None and value > high):
                bounds = f"[{low}, {high}]" if high is not None else f">= {low}"
                raise ValueError(f"'{field}' must be {bounds}, got {value}")

        background = merged["background"]
        if background != "auto":
            if (
                not isinstance(background, list)
                or len(background) != 4
                or not all(_is_int(v) and 0 <= v <= 255 for v in background)
            ):
                raise ValueError(
                    f"'background' must be \"auto\" or 4 integers in [0, 255], got {background!r}"
                )

        workers = merged["workers"]
        if workers is not None and (not _is_int(workers) or workers < 1):
            raise ValueError(f"'workers' must be null or an integer >= 1, got {workers!r}")

        seed = merged["seed"]
        if seed is not None and (not _is_int(seed) or seed < 0):
            raise ValueError(f"'seed' must be null or a non-negative integer, got {seed!r}")

        return merged

    def get_available_configs(self) -> List[str]:
        """
        Returns the names of the run configurations in the configs directory

        :return: Sorted configuration names (filenames without .json)
        :rtype: List[str]
        """
        if not os.path.isdir(self.configs_dir):
            return []
        return sorted(
            f[: -len(".json")] for f in os.listdir(self.configs_dir) if f.endswith(".json")
        )
