"""Allow ``python -m src.cli`` execution."""

import sys

from src.cli.commands import main

sys.exit(main())
