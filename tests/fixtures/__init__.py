"""Object graphs inspected by the test suite."""
