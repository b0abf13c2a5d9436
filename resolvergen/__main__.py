# File: resolvergen/__main__.py
"""
NexaFlow ResolverGen — Module entry point.

Allows running the compiler directly via::

    python -m resolvergen --models models/ --output build/

Delegates to ``resolvergen.cli.cli_main``.
"""

from __future__ import annotations


def main() -> None:
    from resolvergen.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
