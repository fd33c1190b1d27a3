"""Enable execution via `python -m baseline_delta`.

Routes to the command-line entry point.
"""

import sys

from baseline_delta.cli import main

sys.exit(main())
