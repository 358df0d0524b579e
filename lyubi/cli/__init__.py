"""lyubi command-line interface."""
