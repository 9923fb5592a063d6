"""Social Grid - population, region threat assessment and supply-chain service."""

__version__ = "0.1.0"
