"""autorun: batch orchestration of checklist documents against coding agents."""

__version__ = "0.1.0"

__all__ = ["__version__"]
