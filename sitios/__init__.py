"""sitios: publish user-assembled websites to object storage.

This package turns a site's declarative configuration (template globals plus
an ordered list of content sources) into a deployed static website. A site is
rendered by an external static-site tool, reconciled into a public storage
bucket and, for platform subdomains, made reachable through a CNAME record.

Package Structure
-----------------
- `pipeline/`:
    The publish pipeline. `render` materializes the manifest and runs the
    renderer, `storage` reconciles the bucket, `dns` provisions the CNAME and
    `publish` sequences the three stages.
- `realtime/`:
    Websocket command handling, the wire protocol and the session registry
    used to stream progress to a user's live connection.
- `server/`:
    Runtime configuration, the aiohttp application and the CLI entrypoint.
- `config.py`: Static configuration constants, as UPPER_SNAKE_CASE.
- `exceptions.py`: Project-specific exception classes.
- `models.py` / `store.py`: Site and source records and the data-layer contract.

Examples
--------
>>> import sitios
>>> # See `sitios.server.cli` for the entrypoint.
"""

__version__ = "0.3.0"
