"""Framebuffer now-playing display for Volumio."""

__version__ = "0.1.0"
