"""Remote sources, directory listings and HTTP error handling."""
