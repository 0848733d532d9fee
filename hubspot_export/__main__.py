import sys

from .cli import export_main

if __name__ == '__main__':
    sys.exit(export_main())
