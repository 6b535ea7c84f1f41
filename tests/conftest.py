import pathlib
import sys
from collections.abc import Iterator

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_sse_app_status() -> Iterator[None]:
    """sse-starlette keeps a module-level shutdown event bound to one loop."""

    from sse_starlette import sse

    app_status = getattr(sse, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None
    yield
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        app_status.should_exit_event = None
