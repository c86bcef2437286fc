"""Services built on the reference engine."""
