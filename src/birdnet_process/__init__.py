"""birdnet_process package

Species activity tables and charts from BirdNET detections.
"""
__all__ = ["__version__", "info"]

# Keep version in one place (matches pyproject.toml)
__version__ = "0.1.0"


def info() -> str:
    """Return a short informational string for quick manual checks.

    Example:
        >>> import birdnet_process
        >>> birdnet_process.info()
        'birdnet_process 0.1.0'
    """
    return f"birdnet_process {__version__}"
