"""
pytest integration for probekit.

Provides a ``probe`` fixture that is disposed after each test, and can
install the directive import hook for the whole session:

    [tool.pytest.ini_options]
    probekit_rewrite = true
    probekit_include = ["src"]
"""

import os

import pytest

import probekit
from probekit.directive import (
    DirectiveFinder,
    DirectiveOptions,
    install_import_hook,
    uninstall_import_hook,
)
from probekit.probe import Probe

_FINDER_KEY = pytest.StashKey[DirectiveFinder]()


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addini(
        "probekit_rewrite",
        type="bool",
        default=False,
        help="Rewrite '# #probe(...)' directives in imported modules.",
    )
    parser.addini(
        "probekit_include",
        type="linelist",
        default=[],
        help="Path prefixes (relative to rootdir) whose modules are rewritten. Default: rootdir.",
    )


def _include_matcher(rootdir: str, prefixes: list[str]):
    if not prefixes:
        return rootdir
    bases = []
    for prefix in prefixes:
        base = os.path.join(rootdir, prefix).replace("\\", "/")
        bases.append(base if base.endswith("/") else base + "/")
    return lambda path: any(path.replace("\\", "/").startswith(base) for base in bases)


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "probe_timeout(seconds): default timeout for the probe fixture")
    if not config.getini("probekit_rewrite"):
        return
    rootdir = str(config.rootpath)
    options = DirectiveOptions(include=_include_matcher(rootdir, config.getini("probekit_include")))
    config.stash[_FINDER_KEY] = install_import_hook(options, cwd=rootdir)


def pytest_unconfigure(config: pytest.Config) -> None:
    finder = config.stash.get(_FINDER_KEY, None)
    if finder is not None:
        uninstall_import_hook(finder)
        del config.stash[_FINDER_KEY]


@pytest.fixture
def probe(request: pytest.FixtureRequest):
    """A fresh probe on the default registry, disposed at teardown."""
    marker = request.node.get_closest_marker("probe_timeout")
    timeout = marker.args[0] if marker is not None else None
    instance: Probe = probekit.get_probe(timeout=timeout)
    yield instance
    instance.dispose()
