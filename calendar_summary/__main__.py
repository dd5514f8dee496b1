import sys

from calendar_summary.server import main

sys.exit(main())
