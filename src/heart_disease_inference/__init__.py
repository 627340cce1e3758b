"""heart-disease-inference"""

__version__ = "0.1"
