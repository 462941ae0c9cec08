"""SmartProof document compliance workflow."""

__version__ = "0.1.0"
