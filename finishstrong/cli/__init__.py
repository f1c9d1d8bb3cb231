"""finishstrong command-line interface."""
