import pathlib
import sys

import pytest
import sse_starlette.sse

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


@pytest.fixture(autouse=True)
def reset_sse_exit_event():
    """Each TestClient runs its own event loop; drop the loop-bound exit event."""

    app_status = getattr(sse_starlette.sse, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None
    yield
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None
