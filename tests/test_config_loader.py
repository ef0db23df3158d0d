"""Tests for run configuration loading and validation."""

import json

import pytest

from geomosaic.utils.config_loader import DEFAULT_RUN_CONFIG, ConfigLoader


def write_config(directory, name, content):
    path = directory / f"{name}.json"
    path.write_text(content if isinstance(content, str) else json.dumps(content))
    return path


class TestPackagedConfigs:
    """Test the configurations shipped with the package."""

    def test_available_configs(self):
        """The packaged configs are listed by name."""
        names = ConfigLoader().get_available_configs()
        assert {"default", "quick", "curves"} <= set(names)

    @pytest.mark.parametrize("name", ["default", "quick", "curves"])
    def test_packaged_configs_are_valid(self, name):
        """Every packaged config loads and has all fields."""
        config = ConfigLoader().load_run_config(name)
        assert set(config) == set(DEFAULT_RUN_CONFIG)


class TestLoading:
    """Test loading from a directory or a path."""

    def test_defaults_fill_missing_fields(self, tmp_path):
        """Fields left out come from the defaults."""
        write_config(tmp_path, "small", {"steps": 5, "shape_types": ["circle"]})
        config = ConfigLoader(str(tmp_path)).load_run_config("small")
        assert config["steps"] == 5
        assert config["shape_types"] == ["circle"]
        assert config["alpha"] == DEFAULT_RUN_CONFIG["alpha"]
        assert config["background"] == "auto"

    def test_load_config_file(self, tmp_path):
        """A config can be loaded from an explicit path."""
        path = write_config(tmp_path, "explicit", {"background": [1, 2, 3, 4], "seed": 7})
        config = ConfigLoader(str(tmp_path / "elsewhere")).load_config_file(str(path))
        assert config["background"] == [1, 2, 3, 4]
        assert config["seed"] == 7

    def test_missing_file(self, tmp_path):
        """A missing config raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            ConfigLoader(str(tmp_path)).load_run_config("nope")

    def test_invalid_json(self, tmp_path):
        """Malformed JSON is a ValueError."""
        write_config(tmp_path, "broken", "{not json")
        with pytest.raises(ValueError):
            ConfigLoader(str(tmp_path)).load_run_config("broken")

    def test_non_object(self, tmp_path):
        """The top level must be an object."""
        write_config(tmp_path, "list", [1, 2, 3])
        with pytest.raises(ValueError):
            ConfigLoader(str(tmp_path)).load_run_config("list")

    def test_available_configs_in_missing_directory(self, tmp_path):
        """A missing directory has no configs."""
        assert ConfigLoader(str(tmp_path / "missing")).get_available_configs() == []


class TestValidation:
    """Test field validation."""

    @pytest.mark.parametrize(
        "override",
        [
            {"alpha": 0},
            {"alpha": 256},
            {"shape_count": 0},
            {"passes": 0},
            {"max_shape_mutations": -1},
            {"steps": 0},
            {"steps": True},
            {"steps": 2.5},
            {"shape_types": []},
            {"shape_types": ["rectangle", "star"]},
            {"background": [0, 0, 0]},
            {"background": [0, 0, 0, 300]},
            {"background": "white"},
            {"workers": 0},
            {"seed": -1},
            {"colour": "red"},
        ],
    )
    def test_invalid_fields(self, override):
        """Invalid values are configuration errors."""
        with pytest.raises(ValueError):
            ConfigLoader().validate_run_config(override)

    def test_zero_mutations_allowed(self):
        """Hill climbing may be disabled."""
        config = ConfigLoader().validate_run_config({"max_shape_mutations": 0})
        assert config["max_shape_mutations"] == 0

    def test_single_shape_type_string(self):
        """A single shape type may be given as a string."""
        assert ConfigLoader().validate_run_config({"shape_types": "line"})["shape_types"] == ["line"]
