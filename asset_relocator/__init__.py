"""
Asset relocator: move media assets between object-storage providers.
"""
__version__ = "0.1.0"
