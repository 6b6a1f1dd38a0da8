import argparse
import importlib
import logging
import pkgutil
import sys

import inquirer
from rich.console import Console
from rich.logging import RichHandler

from . import measurement_modules
from .core.config_manager import ConfigManager
from .measurement_modules.base import MeasurementModule


def discover_modules():
    """Instantiate every MeasurementModule found in the measurement_modules package."""
    modules = []
    for _, module_name, _ in pkgutil.iter_modules(measurement_modules.__path__):
        module = importlib.import_module(f".{module_name}", measurement_modules.__name__)
        for attribute_name in dir(module):
            attribute = getattr(module, attribute_name)
            if isinstance(attribute, type) and issubclass(attribute, MeasurementModule) and attribute is not MeasurementModule:
                modules.append(attribute())
    return sorted(modules, key=lambda m: m.name)


def setup_logging(level, console):
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def build_parser(modules):
    parser = argparse.ArgumentParser(description="Broadcast loudness and level meter (EBU R128, BS.1770, IEC PPM).")
    parser.add_argument("--config", default="config.json", help="Path to the JSON configuration file.")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR (overrides config).")
    subparsers = parser.add_subparsers(dest="command")
    for module in modules:
        sub = subparsers.add_parser(module.name, help=module.description, description=module.description)
        module.add_arguments(sub)
    return parser


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    modules = discover_modules()
    parser = build_parser(modules)
    args = parser.parse_args(argv)

    # No module on the command line: ask interactively
    if args.command is None:
        questions = [
            inquirer.List('command',
                          message="Which meter do you want to run?",
                          choices=[(f"{m.name}: {m.description}", m.name) for m in modules],
                          ),
        ]
        answers = inquirer.prompt(questions)
        if answers is None:
            return 0
        args = parser.parse_args(argv + [answers['command']])

    console = Console()
    config = ConfigManager(args.config)
    setup_logging(args.log_level or config.get_meter_config().get("log_level", "INFO"), console)

    args.console = console
    args.config_manager = config

    for module in modules:
        if module.name == args.command:
            return module.run(args)

    parser.error(f"unknown module: {args.command}")


if __name__ == '__main__':
    sys.exit(main())
