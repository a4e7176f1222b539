"""Core package - errors, logging and the test generation client."""
