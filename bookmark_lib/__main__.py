import sys

from bookmark_lib.cli import main

sys.exit(main())
