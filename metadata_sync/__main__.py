import sys

from metadata_sync.cli import main

sys.exit(main())
