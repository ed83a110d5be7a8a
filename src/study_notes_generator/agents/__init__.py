"""Request builders and response parsers for each content-understanding call."""
