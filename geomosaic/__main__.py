from geomosaic.app import App
from geomosaic.cli.parser import parse_arguments
import sys


def main(argv=None):
    """
    Main entry point for the geomosaic application

    Parses the command line, runs the approximation and exits with its status code
    """
    args = parse_arguments(sys.argv[1:] if argv is None else argv)
    app = App()
    sys.exit(app.run_cli(args))


if __name__ == "__main__":
    # ensures main() is called only when the script is executed directly
    main()
