"""Console entry point: ``dupgate`` (or ``python -m dupgate.run``).

Binding and connection limits come from the ``server`` section of the service
config; see ServerConfig.
"""

from __future__ import annotations

import uvicorn

from dupgate.config import load_config


def main() -> None:
    """Load config and serve the gate. SystemExit from load_config() propagates."""
    config = load_config()
    uvicorn.run("dupgate.main:app", **config.server.uvicorn_options())


if __name__ == "__main__":
    main()
