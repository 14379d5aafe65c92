import sys

from livedoc.cli import main

sys.exit(main())
