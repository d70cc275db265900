"""AumOS AI risk engine — risk classification and risk management state engine."""

__version__ = "0.1.0"
