import asyncio
import inspect
import logging
import pathlib
import sys

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
TESTS = pathlib.Path(__file__).resolve().parent
for path in (ROOT, TESTS):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))


def pytest_configure(config: pytest.Config) -> None:
    """Register the marker carried by coroutine tests."""

    config.addinivalue_line("markers", "asyncio: run the ledger coroutine test on a fresh event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Run ``async def`` tests on their own loop; sync tests fall through to pytest."""

    test_function = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_function):
        return None
    # funcargs also carries fixtures requested only by other fixtures
    arguments = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(test_function(**arguments))
    finally:
        asyncio.set_event_loop(None)
        loop.close()
    return True


@pytest.fixture
def sqlite_url(tmp_path: pathlib.Path) -> str:
    # file-backed so gathered reads can use separate connections
    return f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def restore_root_logging():
    """Undo handlers and level that ``setup_logging`` installs on the root logger."""

    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)
