"""Tests for the probekit pytest plugin, run in isolated pytester sessions."""

import pytest


@pytest.fixture
def isolated(pytester: pytest.Pytester, monkeypatch: pytest.MonkeyPatch) -> pytest.Pytester:
    # Load the plugin explicitly with -p, not through its entry point
    monkeypatch.setenv("PYTEST_DISABLE_PLUGIN_AUTOLOAD", "1")
    return pytester


def test_probe_fixture_is_disposed_after_each_test(isolated):
    isolated.makepyfile(
        """
        from probekit import probe_emit

        seen = []

        def test_uses_probe(probe):
            seen.append(probe)
            probe.run(probe_emit, "x", 1)
            assert probe.buffered == 1

        def test_previous_probe_was_disposed(probe):
            assert seen[0].disposed
            assert probe is not seen[0]
            assert not probe.disposed
        """
    )
    result = isolated.runpytest("-p", "probekit.pytest_plugin")
    result.assert_outcomes(passed=2)


def test_probe_timeout_marker(isolated):
    isolated.makepyfile(
        """
        import pytest

        @pytest.mark.probe_timeout(0.2)
        def test_marked(probe):
            assert probe.options.timeout == 0.2

        def test_unmarked(probe):
            assert probe.options.timeout == 1.0
        """
    )
    result = isolated.runpytest("-p", "probekit.pytest_plugin", "--strict-markers")
    result.assert_outcomes(passed=2)


def test_rewrite_ini_installs_import_hook(isolated):
    isolated.makeini(
        """
        [pytest]
        probekit_rewrite = true
        probekit_include = probed_app
        """
    )
    package = isolated.mkpydir("probed_app")
    (package / "orders.py").write_text(
        "def place(order_id):\n"
        '    # #probe("placed", order_id)\n'
        "    return order_id\n"
    )
    isolated.makepyfile(
        """
        from probed_app.orders import place

        def test_directive_emits(probe):
            assert probe.run(place, 7) == 7
            assert probe.buffered == 1
        """
    )
    result = isolated.runpytest("-p", "probekit.pytest_plugin")
    result.assert_outcomes(passed=1)


def test_rewrite_disabled_by_default(isolated):
    package = isolated.mkpydir("plain_app")
    (package / "orders.py").write_text(
        "def place(order_id):\n"
        '    # #probe("placed", order_id)\n'
        "    return order_id\n"
    )
    isolated.makepyfile(
        """
        from plain_app.orders import place

        def test_directive_stays_a_comment(probe):
            probe.run(place, 7)
            assert probe.buffered == 0
        """
    )
    result = isolated.runpytest("-p", "probekit.pytest_plugin")
    result.assert_outcomes(passed=1)
