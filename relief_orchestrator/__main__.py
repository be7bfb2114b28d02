"""Allow ``python -m relief_orchestrator``."""

import sys

from relief_orchestrator.main import main

sys.exit(main())
