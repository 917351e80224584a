"""SQLAlchemy persistence for WBS sets and match runs."""
