import sys

from natstop.cli import main

sys.exit(main())
