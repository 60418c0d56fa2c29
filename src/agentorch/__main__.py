"""Entry point for ``python -m agentorch``."""

import sys

from agentorch.cli import main

if __name__ == "__main__":
    sys.exit(main())
