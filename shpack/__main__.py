import sys

from shpack.cli import main

sys.exit(main())
