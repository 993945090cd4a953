"""Allow `python -m token_screening`."""

import sys

from .cli import main


sys.exit(main())
