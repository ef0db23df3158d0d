import argparse
import os

from geomosaic.core.shapes import AVAILABLE_SHAPES


class ShapeDataRequiresResults(argparse.Action):
    """
    Custom argparse action to ensure --save-shapes requires --save-results
    """

    def __call__(self, parser, namespace, values, option_string=None):
        """
        Checks if --save-results is specified when --save-shapes is used

        :param parser: The ArgumentParser object
        :type parser: argparse.ArgumentParser
        :param namespace: The argparse.Namespace object to store attributes
        :type namespace: argparse.Namespace
        :param values: The associated command line arguments (not used for this flag)
        :param option_string: The option string that was used ('--save-shapes')
        :type option_string: str
        :raises SystemExit: If --save-results was not given before this flag
        """
        if not getattr(namespace, "save_results", False):
            parser.error(f"{option_string} requires --save-results to be specified")
        setattr(namespace, self.dest, True)


class PositiveInt(argparse.Action):
    """
    Custom argparse action that only accepts integers >= `minimum`
    """

    def __init__(self, option_strings, dest, minimum=1, **kwargs):
        self.minimum = minimum
        super().__init__(option_strings, dest, type=int, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        if values < self.minimum:
            parser.error(f"{option_string} must be at least {self.minimum}, got {values}")
        setattr(namespace, self.dest, values)


def parse_background(value: str):
    """
    Parses a --background value: "auto" or four comma-separated channel values

    :param value: The raw argument
    :type value: str
    :raises argparse.ArgumentTypeError: If the value is not "auto" or R,G,B,A in [0, 255]
    :return: "auto" or a list of four ints
    :rtype: Union[str, List[int]]
    """
    if value.strip().lower() == "auto":
        return "auto"
    parts = value.split(",")
    try:
        channels = [int(p) for p in parts]
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"background must be 'auto' or R,G,B,A integers, got '{value}'"
        )
    if len(channels) != 4 or any(c < 0 or c > 255 for c in channels):
        raise argparse.ArgumentTypeError(
            f"background must have 4 values in [0, 255], got '{value}'"
        )
    return channels


def build_parser() -> argparse.ArgumentParser:
    """Creates the argument parser for the geomosaic command line"""
    parser = argparse.ArgumentParser(
        prog="geomosaic",
        description="Approximate an image by adding geometric shapes one at a time",
    )

    # input/output args
    parser.add_argument("-i", "--input", help="Path to input image")
    parser.add_argument("-o", "--output", required=True, help="Path to output directory")

    # run settings; anything left unset comes from the run configuration
    run_group = parser.add_argument_group("Run Settings")
    run_group.add_argument(
        "--config",
        metavar="NAME|PATH",
        help="Run configuration: a packaged config name or a path to a JSON file",
    )
    run_group.add_argument(
        "-s",
        "--shape",
        dest="shape_types",
        action="append",
        choices=AVAILABLE_SHAPES,
        help="Shape type to use (repeat for several)",
    )
    run_group.add_argument(
        "-n", "--steps", action=PositiveInt, help="Number of shapes to add"
    )
    run_group.add_argument(
        "-a", "--alpha", type=int, help="Opacity of the added shapes, 1-255"
    )
    run_group.add_argument(
        "--background",
        type=parse_background,
        help="Starting canvas color: 'auto' (average of the input) or R,G,B,A",
    )
    run_group.add_argument(
        "--seed", action=PositiveInt, minimum=0, help="Seed for a reproducible run"
    )

    # search settings group
    search_group = parser.add_argument_group("Search Settings")
    search_group.add_argument(
        "--shape-count",
        dest="shape_count",
        action=PositiveInt,
        help="Random shapes tried per pass",
    )
    search_group.add_argument(
        "--mutations",
        dest="max_shape_mutations",
        action=PositiveInt,
        minimum=0,
        help="Hill-climb mutations per pass",
    )
    search_group.add_argument(
        "--passes", action=PositiveInt, help="Restart-and-climb rounds per worker"
    )
    search_group.add_argument(
        "--workers", action=PositiveInt, help="Number of search threads (default: CPU count)"
    )

    # output options group
    output_group = parser.add_argument_group("Output Settings")
    output_group.add_argument(
        "--gif", action="store_true", help="Save an animated GIF of the progress"
    )
    output_group.add_argument(
        "--gif-interval",
        dest="gif_interval",
        action=PositiveInt,
        default=1,
        help="Steps between GIF frames",
    )
    output_group.add_argument(
        "--save-results",
        action="store_true",
        help="Save the committed shapes to a results json file",
    )
    output_group.add_argument(
        "--save-shapes",
        action=ShapeDataRequiresResults,
        nargs=0,
        default=False,
        dest="save_shapes_flag",
        help="Also save the raw shape parameters to a npy file (requires --save-results)",
    )

    # loading group
    load_group = parser.add_argument_group("Loading Settings")
    load_group.add_argument(
        "--replay",
        metavar="PATH_TO_JSON",
        help="Redraw the shapes of a saved results json file instead of searching",
    )
    return parser


def parse_arguments(args):
    """
    Parses command line arguments for the geomosaic application

    :param args: A list of command line arguments (typically sys.argv[1:])
    :type args: list[str]
    :return: An argparse.Namespace object containing parsed arguments
    :rtype: argparse.Namespace
    """
    parser = build_parser()
    parsed_args = parser.parse_args(args)

    # post-parsing validation
    if parsed_args.save_shapes_flag and not parsed_args.save_results:
        parser.error("--save-shapes requires --save-results")
    if parsed_args.alpha is not None and not 1 <= parsed_args.alpha <= 255:
        parser.error(f"--alpha must be in [1, 255], got {parsed_args.alpha}")
    if parsed_args.replay:
        if not os.path.exists(parsed_args.replay):
            parser.error(f"Replay results JSON file not found: {parsed_args.replay}")
    elif not parsed_args.input:
        parser.error("the following arguments are required: -i/--input")
    return parsed_args


def run_config_overrides(parsed_args) -> dict:
    """
    Collects the run configuration fields that were given on the command line

    :param parsed_args: Result of `parse_arguments`
    :type parsed_args: argparse.Namespace
    :return: Field name to value, only for the options that were set
    :rtype: dict
    """
    fields = (
        "shape_types",
        "alpha",
        "shape_count",
        "max_shape_mutations",
        "passes",
        "steps",
        "background",
        "workers",
        "seed",
    )
    overrides = {}
    for field in fields:
        value = getattr(parsed_args, field, None)
        if value is not None:
            overrides[field] = value
    return overrides
