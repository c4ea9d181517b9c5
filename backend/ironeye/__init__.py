"""Iron Eye: real-time kettlebell snatch phase tracking and rep counting."""

__version__ = "0.4.0"
