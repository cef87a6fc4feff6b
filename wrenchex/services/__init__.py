"""Business logic called by the HTTP and socket layers."""
