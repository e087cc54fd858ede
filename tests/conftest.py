import logging
import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import puzzlenft`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from puzzlenft.chain.config import ConfigManager  # noqa: E402
from puzzlenft.chain.gas import GasReporter  # noqa: E402
from puzzlenft.chain.observability import ROOT_LOGGER  # noqa: E402
from puzzlenft.chain.network import reset_chain  # noqa: E402
from puzzlenft.chain.runtime import Chain  # noqa: E402
from puzzlenft.testing import clear_fixtures  # noqa: E402

_GAS_REPORTER = GasReporter()


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def _drop_log_handlers() -> None:
    root = logging.getLogger(ROOT_LOGGER)
    for handler in list(root.handlers):
        if getattr(handler, "_puzzlenft", False):
            root.removeHandler(handler)
    root.setLevel(logging.NOTSET)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless PUZZLENFT_RUN_SLOW=1)",
    )
    config.addinivalue_line(
        "markers",
        "gas: gas usage tests (reported when PUZZLENFT_GAS_REPORT=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('PUZZLENFT_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set PUZZLENFT_RUN_SLOW=1 to enable'))


def pytest_terminal_summary(terminalreporter, exitstatus, config) -> None:
    if _env_flag('PUZZLENFT_GAS_REPORT'):
        terminalreporter.write_sep("=", "gas report")
        terminalreporter.write_line(_GAS_REPORTER.render())


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    """Every test starts from default configuration and no shared chain."""
    for name in list(os.environ):
        if name.startswith("PUZZLENFT_") and name not in ("PUZZLENFT_GAS_REPORT", "PUZZLENFT_RUN_SLOW"):
            monkeypatch.delenv(name, raising=False)
    ConfigManager.reset()
    reset_chain()
    clear_fixtures()
    yield
    ConfigManager.reset()
    reset_chain()
    clear_fixtures()
    _drop_log_handlers()


@pytest.fixture
def chain() -> Chain:
    c = Chain()
    if _env_flag('PUZZLENFT_GAS_REPORT'):
        _GAS_REPORTER.attach(c)
    return c


@pytest.fixture
def signers(chain):
    return chain.get_signers()


@pytest.fixture
def setup(chain):
    """Puzzle deployed by the first signer, with puzzle 0 (100 free pieces) added."""
    from puzzlenft.chain.factory import get_contract_factory

    owner, addr1, addr2 = chain.get_signers()[:3]
    token = get_contract_factory("Puzzle", chain, owner).deploy()
    token.addPuzzle("test", 100, 0)
    return token, owner, addr1, addr2
