"""Backend for cached, segmented speech responses and TTS cost modelling."""

__version__ = "0.1.0"
