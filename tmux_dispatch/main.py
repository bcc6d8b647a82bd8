"""
Main entry point for the dispatch command.
"""

import sys

from .cli.enhanced_cli import DispatchCLI


def main() -> int:
    return DispatchCLI().run(sys.argv[1:])


if __name__ == '__main__':
    sys.exit(main())
