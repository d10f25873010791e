import sys
from pathlib import Path

# Project root and this directory, for `api`, `asset_store`, ... and `fakes`
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))
