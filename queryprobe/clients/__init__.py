"""Target drivers for the systems under test."""
