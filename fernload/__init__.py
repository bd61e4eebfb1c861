"""Boot ROM serial loader, stage uploads and factory test for Fernvale boards."""

__version__ = "0.1.0"
__all__ = ["cli", "factory", "hexdump", "image", "protocol", "screen", "stages"]