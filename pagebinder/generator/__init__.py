"""Output generators that turn volume structures into files."""

from .base import Generator, GeneratorFactory
from .cbz import CbzGenerator, CbzGeneratorFactory

__all__ = ["CbzGenerator", "CbzGeneratorFactory", "Generator", "GeneratorFactory"]
