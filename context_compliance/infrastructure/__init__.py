"""Infrastructure layer - compliance engine implementations."""
