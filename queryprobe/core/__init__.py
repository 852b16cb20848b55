"""Runner, comparator, reporting and shared runtime helpers."""
