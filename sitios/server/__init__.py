"""Service runtime: configuration, aiohttp application and CLI entrypoint."""
