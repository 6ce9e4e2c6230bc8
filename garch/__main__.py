import sys

from garch.cli import main

if __name__ == "__main__":
    sys.exit(main())
