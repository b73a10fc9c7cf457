# =============================================================================
# imapcl Entry Point for `python -m imapcl`
# =============================================================================
# Equivalent to running the 'imapcl' command after installation.
# =============================================================================

import sys

from imapcl.cli import main

if __name__ == "__main__":
    sys.exit(main())
