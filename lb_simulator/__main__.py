"""
Module entrypoint for `python -m lb_simulator`.
Delegates to the CLI main in lb_simulator.cli.
"""

from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
