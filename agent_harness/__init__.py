"""Agent harness: bounded, audited execution of declarative AI agents."""

__version__ = "0.1.0"
