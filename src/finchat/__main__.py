"""Run the terminal chat client: ``python -m finchat``."""

import sys

from finchat.cli import main

sys.exit(main())
