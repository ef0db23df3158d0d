import os
import datetime
import traceback
import numpy as np

from geomosaic.utils.config_loader import ConfigLoader
import geomosaic.core.image_utils as image_utils
import geomosaic.core.metrics as metrics
import geomosaic.core.gif_creator as gif_creator
from geomosaic.core.model import Model, ShapeResult
from geomosaic.cli.parser import run_config_overrides
from geomosaic.utils.shape_io import (
    load_results_and_shapes,
    replay_results,
    results_to_dict,
    save_results_and_shapes,
    shapes_to_array,
)
from typing import Any, Callable, Dict, List, Optional, Tuple

RESULT_IMAGE_NAME = "result"
GIF_NAME = "progress"
RESULTS_NAME = "results"


class App:
    """
    Main application class for geomosaic

    Turns command line arguments into a run configuration, builds the model,
    runs the requested number of steps and saves the outputs
    """

    def __init__(self, config_loader: Optional[ConfigLoader] = None):
        """
        Initializes the App class

        :param config_loader: Loader for run configurations, the packaged configs by default
        :type config_loader: Optional[ConfigLoader]
        """
        self.config_loader = config_loader or ConfigLoader()
        self.error_message = ""
        self.score_history: List[float] = []
        self.final_metrics: Dict[str, float] = {}

    def run_cli(self, args) -> int:
        """
        Runs the application in Command Line Interface (CLI) mode

        :param args: Parsed command line arguments
        :type args: argparse.Namespace
        :return: Process exit code, 0 on success
        :rtype: int
        """
        if getattr(args, "replay", None):
            return 0 if self.run_replay(args.replay, args.output) else 1

        params = self.collect_parameters_cli(args)
        if params is None:
            print("CLI parameter collection failed.")
            return 1
        result = self.run_approximation(params)
        if result is None:
            print(f"Error during CLI run: {self.error_message}")
            return 1
        print("CLI run finished successfully.")
        return 0

    def collect_parameters_cli(self, args) -> Optional[Dict[str, Any]]:
        """
        Merges the run configuration with the command line overrides

        Command line values win over the configuration file, which wins over
        the defaults

        :param args: Parsed command line arguments from `argparse`
        :type args: argparse.Namespace
        :return: Parameters for the run, or None if an error occurs
        :rtype: Optional[Dict[str, Any]]
        """
        self.error_message = ""
        try:
            config_ref = getattr(args, "config", None)
            if config_ref is None:
                config = {}
            elif config_ref.endswith(".json") or os.path.sep in config_ref:
                config = self.config_loader.load_config_file(config_ref)
            else:
                config = self.config_loader.load_run_config(config_ref)

            config = dict(config)
            config.update(run_config_overrides(args))
            params = self.config_loader.validate_run_config(config)
        except (FileNotFoundError, ValueError) as e:
            self.error_message = str(e)
            print(f"Error: {self.error_message}")
            return None

        params["input_image"] = args.input
        params["output_directory"] = args.output
        params["gif"] = bool(getattr(args, "gif", False))
        params["gif_interval"] = getattr(args, "gif_interval", 1) or 1
        params["save_results"] = bool(getattr(args, "save_results", False))
        params["save_shapes"] = bool(getattr(args, "save_shapes_flag", False))

        print("Run Configuration")
        print(f"  Input: {params['input_image']}")
        print(f"  Output: {params['output_directory']}")
        print(f"  Shapes: {', '.join(params['shape_types'])}")
        print(f"  Steps: {params['steps']}, Alpha: {params['alpha']}")
        print(
            f"  Search: shape_count={params['shape_count']}, "
            f"mutations={params['max_shape_mutations']}, passes={params['passes']}"
        )
        print(f"  Background: {params['background']}")
        print(f"  Workers: {params['workers'] or 'auto'}, Seed: {params['seed']}")
        return params

    def prepare_data(
        self, params: Dict[str, Any]
    ) -> Optional[Tuple[Model, Tuple[int, int, int, int]]]:
        """
        Loads the target image and builds the model

        :param params: Parameters from `collect_parameters_cli`
        :type params: Dict[str, Any]
        :return: (model, background color), or None if an error occurs
        :rtype: Optional[Tuple[Model, Tuple[int, int, int, int]]]
        """
        print("Preparing data...")
        try:
            target = image_utils.load_image(params["input_image"])
        except (FileNotFoundError, ValueError) as e:
            self.error_message = f"Failed to load input image: {e}"
            print(self.error_message)
            return None
        print(f"Loaded target image: {target.shape[1]}x{target.shape[0]}")

        try:
            os.makedirs(params["output_directory"], exist_ok=True)
        except OSError as e:
            self.error_message = (
                f"Failed to create output directory '{params['output_directory']}': {e}"
            )
            print(self.error_message)
            return None

        if params["background"] == "auto":
            background = image_utils.average_color(target)
            print(f"Using average image color as background: {background}")
        else:
            background = image_utils.to_color(params["background"])

        try:
            model = Model(
                target, background, num_workers=params["workers"], seed=params["seed"]
            )
        except ValueError as e:
            self.error_message = str(e)
            print(self.error_message)
            return None
        return model, background

    def run_approximation(
        self, params: Dict[str, Any], progress_emitter: Optional[Callable] = None
    ) -> Optional[Tuple[np.ndarray, List[float], List[ShapeResult]]]:
        """
        Runs the shape-by-shape approximation and saves the outputs

        :param params: Parameters from `collect_parameters_cli`
        :type params: Dict[str, Any]
        :param progress_emitter: Optional callable receiving (step, total, score) after every step
        :type progress_emitter: Optional[Callable]
        :return: (final canvas, score history, committed shapes), or None if an error occurs
        :rtype: Optional[Tuple[np.ndarray, List[float], List[ShapeResult]]]
        """
        self.error_message = ""
        self.score_history = []
        self.final_metrics = {}
        start_run_time = datetime.datetime.now()

        prepared = self.prepare_data(params)
        if prepared is None:
            print(f"Data prep failed: {self.error_message}")
            return None
        model, background = prepared

        steps = params["steps"]
        gif_frames = [model.get_current().copy()] if params["gif"] else []
        results: List[ShapeResult] = []
        report_interval = max(1, steps // 10)
        self.score_history.append(model.get_last_score())

        print("\nStarting Approximation")
        print(f" Workers: {model.num_workers}, Initial score: {model.get_last_score():.6f}")
        try:
            for step in range(1, steps + 1):
                results.extend(
                    model.step(
                        params["shape_types"],
                        params["alpha"],
                        params["shape_count"],
                        params["max_shape_mutations"],
                        params["passes"],
                    )
                )
                score = model.get_last_score()
                self.score_history.append(score)

                if params["gif"] and step % params["gif_interval"] == 0:
                    gif_frames.append(model.get_current().copy())
                if progress_emitter is not None:
                    progress_emitter(step, steps, score)
                if step % report_interval == 0 or step == steps:
                    elapsed = datetime.datetime.now() - start_run_time
                    remaining = elapsed / step * (steps - step)
                    print(
                        f"Step {step}/{steps} score={score:.6f} "
                        f"(elapsed {str(elapsed).split('.')[0]}, "
                        f"remaining ~{str(remaining).split('.')[0]})"
                    )
        except ValueError as e:
            self.error_message = f"Approximation failed: {e}"
            print(self.error_message)
            return None
        except Exception as e:
            self.error_message = f"Unexpected error during approximation: {e}"
            traceback.print_exc()
            return None

        final_image = model.get_current().copy()
        for name, metric_fn in metrics.REPORT_METRICS.items():
            self.final_metrics[name] = metric_fn(model.get_target(), final_image)
        end_run_time = datetime.datetime.now()
        print("\nApproximation Finished")
        print(f" Shapes added: {len(results)}")
        for name, value in self.final_metrics.items():
            print(f" Final {name}: {value:.6f}")
        print(f" Total time: {str(end_run_time - start_run_time).split('.')[0]}")

        if not self.save_outputs(params, model, background, results, gif_frames):
            return None
        return final_image, self.score_history, results

    def save_outputs(
        self,
        params: Dict[str, Any],
        model: Model,
        background: Tuple[int, int, int, int],
        results: List[ShapeResult],
        gif_frames: List[np.ndarray],
    ) -> bool:
        """
        Saves the final image and, if requested, the GIF and the results files

        :return: True if the final image was saved
        :rtype: bool
        """
        output_directory = params["output_directory"]
        try:
            image_path = image_utils.save_image(
                model.get_current(), output_directory, RESULT_IMAGE_NAME
            )
            print(f"Saved final image to: {image_path}")
        except OSError as e:
            self.error_message = str(e)
            print(f"Error: {self.error_message}")
            return False

        if params["gif"]:
            if len(gif_frames) < 2 or not np.array_equal(gif_frames[-1], model.get_current()):
                gif_frames.append(model.get_current().copy())
            gif_creator.create_gif(gif_frames, output_directory, GIF_NAME)

        if params["save_results"]:
            results_data = results_to_dict(
                results, model.get_width(), model.get_height(), background
            )
            results_data["settings"] = {
                key: params[key]
                for key in (
                    "shape_types",
                    "alpha",
                    "shape_count",
                    "max_shape_mutations",
                    "passes",
                    "steps",
                    "seed",
                )
            }
            results_data["final_metrics"] = {
                name: (None if np.isinf(value) else float(value))
                for name, value in self.final_metrics.items()
            }
            save_results_and_shapes(
                os.path.join(output_directory, RESULTS_NAME),
                results_data,
                shapes_array=shapes_to_array(results) if params["save_shapes"] else None,
                save_shape_data_flag=params["save_shapes"],
            )
        return True

    def run_replay(self, json_path: str, output_directory: str) -> bool:
        """
        Redraws the shapes of a saved results file and saves the resulting image

        :param json_path: Path to a results json file written by a previous run
        :type json_path: str
        :param output_directory: Directory the replayed image is written to
        :type output_directory: str
        :return: True on success
        :rtype: bool
        """
        self.error_message = ""
        print(f"Attempting to replay shapes from: {json_path}")
        results_data, _ = load_results_and_shapes(json_path)
        if results_data is None:
            self.error_message = f"Could not load results file: {json_path}"
            print(f"Error: {self.error_message}")
            return False

        try:
            width, height = int(results_data["width"]), int(results_data["height"])
            background = results_data.get("background") or (0, 0, 0, 255)
            records = results_data.get("shapes", [])
            # no target is stored; replay scores measure distance from the background
            blank = image_utils.create_bitmap(width, height, background)
            model = Model(blank, background, num_workers=1)
            replayed = replay_results(model, records)
        except (KeyError, TypeError, ValueError) as e:
            self.error_message = f"Invalid results file {json_path}: {e}"
            print(f"Error: {self.error_message}")
            return False

        print(f" Replayed {len(replayed)} shapes on a {width}x{height} canvas")
        try:
            image_path = image_utils.save_image(
                model.get_current(), output_directory, RESULT_IMAGE_NAME
            )
        except OSError as e:
            self.error_message = str(e)
            print(f"Error: {self.error_message}")
            return False
        print(f"Saved replayed image to: {image_path}")
        return True
