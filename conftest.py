"""Root-level conftest.py — make the checkout importable without installing.

The dashboard shell lives in packages/dashboard, which is run as
``python -m packages.dashboard`` from the repo root and is not part of the
installed distribution. Putting the repo root first on sys.path lets tests
import both it and the local beadview package.
"""

import sys
from pathlib import Path

_repo_root = str(Path(__file__).parent)
if _repo_root not in sys.path:
    sys.path.insert(0, _repo_root)
