"""MPEG-TS codecs, H.264 SPS parsing, settings, layered configuration and logging for streaming media."""

__version__ = "0.1.0"