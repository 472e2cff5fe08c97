"""Allow ``python -m coldspot``."""

import sys

from coldspot.cli import main

sys.exit(main())
