#!/usr/bin/env python3

import sys
from pathlib import Path

# Put the project root on sys.path so the package runs without installation
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from broadcast_meter.main import main

if __name__ == "__main__":
    sys.exit(main())
