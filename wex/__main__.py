import sys

from wex.cli import main

sys.exit(main())
