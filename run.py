#!/usr/bin/env python
"""
Run script for cli-calc.
This allows users to start the calculator without installing it.
"""

import sys

from cli_calc.app import main

if __name__ == "__main__":
    sys.exit(main())
