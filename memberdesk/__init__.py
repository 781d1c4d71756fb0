"""Member verification and loan-lookup desk for cooperative chat agents."""

__version__ = "0.1.0"
