"""rx - assemble a composite install from independently released components."""

__version__ = "0.4.0"
