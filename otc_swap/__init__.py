"""OTC swap engine: sells the platform token for SOL along a step bonding curve."""

__version__ = "0.1.0"
