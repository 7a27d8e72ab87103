"""Find viral YouTube videos by scoring views against channel size."""

__version__ = "0.1.0"
