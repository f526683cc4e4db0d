"""
Test configuration for BoltX risk engine tests.

sys.path is configured so 'from boltx...' resolves whether pytest is run from
the project root or from boltx/.
"""
import sys
from pathlib import Path

_boltx_dir = Path(__file__).parent.parent        # .../boltx/
_project_root = _boltx_dir.parent               # .../

if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest

from boltx.tests.factories import InMemoryDataSource


@pytest.fixture
def source() -> InMemoryDataSource:
    return InMemoryDataSource()
