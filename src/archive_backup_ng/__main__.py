"""archive-backup-ng: archive_backup_ng/__main__.py.

Entry point for ``python -m archive_backup_ng``.
"""

import sys

from .cli.dispatcher import main

if __name__ == "__main__":
    sys.exit(main())
