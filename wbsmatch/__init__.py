"""WBSMatch - reconcile BIM model elements against a project's WBS schedule."""

__version__ = "0.1.0"
