"""Allow ``python -m kubeharness``."""

import sys

from kubeharness.cli import main

if __name__ == "__main__":
    sys.exit(main())
