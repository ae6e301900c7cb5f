"""Remote content hosts."""
