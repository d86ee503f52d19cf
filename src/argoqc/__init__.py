"""argoqc — microscope quality control from calibration-slide images."""

__version__ = "0.3.0"
