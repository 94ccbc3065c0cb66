__version__ = "0.3.0"
__license__ = "AGPL-3.0"
