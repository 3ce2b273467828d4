"""
tabdeploy: tabular modelling workflows from CSV to a local prediction API.

This package provides preprocessing recipes, tree-based model specifications,
hyperparameter tuning, a versioned folder pin board and a small HTTP server
for serving fitted workflows.
"""

from importlib.metadata import version

__version__ = version("tabdeploy")

__all__ = ["__version__"]
