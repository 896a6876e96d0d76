"""
Shared pytest configuration.

Puts the project root on sys.path so `import trueastro` and
`import tests.utils` work without installing the package.
"""

import sys
from pathlib import Path


ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
