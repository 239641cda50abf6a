"""Cross-cutting infrastructure: settings, logging and monitoring."""
