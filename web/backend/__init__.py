"""convoflow dev backend.

Dev convenience:
When running via `cd web && PYTHONPATH=. uvicorn backend.main:app`, the Python
import root is `web/`, so the sibling `convoflow` package is not importable
unless it's installed in the active venv. We add the repository root to
`sys.path` when needed so the local dev command stays stable.
"""

__version__ = "0.1.0"

from pathlib import Path
import sys


def _ensure_path(path: Path) -> None:
    value = str(path)
    if value not in sys.path:
        sys.path.insert(0, value)


repo_root = Path(__file__).resolve().parents[2]
if (repo_root / "convoflow").is_dir():
    _ensure_path(repo_root)
