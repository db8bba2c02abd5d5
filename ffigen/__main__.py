"""Enable running ffigen as a module: python -m ffigen"""

import sys

from ffigen import (
    cli,
)

if __name__ == "__main__":
    # pylint: disable=no-value-for-parameter
    sys.exit(cli())
