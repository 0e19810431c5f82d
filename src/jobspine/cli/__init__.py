"""jobspine command-line interface."""
