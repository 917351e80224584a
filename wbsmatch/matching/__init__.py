"""Element-to-WBS matching engine."""
