#!/usr/bin/env python3
"""
Console Banking Entry Point

Starts the text menu console with the configured storage backend.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from console_banking.console import main


if __name__ == "__main__":
    main()
