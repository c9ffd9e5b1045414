"""
Main entry point for the Gador clients.

    python -m gador_client [--url ws://host:5000/ws] remote scene 3
    python -m gador_client stage
"""
from gador_client.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
