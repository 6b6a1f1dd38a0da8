from abc import ABC, abstractmethod
import argparse


class MeasurementModule(ABC):
    """
    Base class for every CLI module.

    A module has a name (the command on the command line), a description
    (help text), optional extra arguments, and a run method returning an
    exit code.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    def add_arguments(self, parser: argparse.ArgumentParser):
        """Register module-specific options on the module's sub-parser."""

    @abstractmethod
    def run(self, args: argparse.Namespace) -> int:
        pass
