"""Built-in tools and tool adapters."""
