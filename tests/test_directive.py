"""Tests for the probe directive rewriter and import hook."""

import importlib
import re
import sys
import textwrap

import pytest
from pydantic import ValidationError

import probekit
from probekit.directive import (
    DirectiveLoader,
    DirectiveOptions,
    DirectiveTransformer,
    install_import_hook,
    uninstall_import_hook,
)
from probekit.events import ProbeEvent

IMPORT = "from probekit import probe_emit as __PROBE__\n"


@pytest.fixture
def transformer() -> DirectiveTransformer:
    return DirectiveTransformer(cwd="/proj")


# ---------------------------------------------------------------------------
# Rewriting
# ---------------------------------------------------------------------------
class TestTransform:
    def test_rewrites_indented_directive(self, transformer):
        code = 'def save(item):\n    # #probe("saved", item)\n    return item\n'
        assert transformer.transform(code, "/proj/app/service.py") == (
            IMPORT + 'def save(item):\n    __PROBE__("saved", item)\n    return item\n'
        )

    def test_rewrites_every_directive_with_one_import(self, transformer):
        code = textwrap.dedent(
            """\
            def run():
                # #probe("start", None)
                for i in range(3):
                    #   #probe( "step", i )
                    pass
            """
        )
        result = transformer.transform(code, "/proj/app/loop.py")
        assert result.count(IMPORT) == 1
        assert '    __PROBE__("start", None)\n' in result
        assert '        __PROBE__( "step", i )\n' in result

    def test_keeps_nested_parens_and_drops_semicolon(self, transformer):
        code = 'def calc():\n    # #probe("calc", f(g(1)));\n'
        result = transformer.transform(code, "/proj/app/calc.py")
        assert '    __PROBE__("calc", f(g(1)))\n' in result

    def test_import_placed_after_docstring_and_future(self, transformer):
        code = '"""Service."""\nfrom __future__ import annotations\n\nimport os\n# #probe("boot", os.name)\n'
        assert transformer.transform(code, "/proj/app/boot.py") == (
            '"""Service."""\n'
            "from __future__ import annotations\n"
            + IMPORT
            + "\nimport os\n"
            '__PROBE__("boot", os.name)\n'
        )

    def test_import_placed_after_shebang_and_coding(self, transformer):
        code = '#!/usr/bin/env python\n# -*- coding: utf-8 -*-\n# #probe("start", 1)\n'
        assert transformer.transform(code, "/proj/app/script.py") == (
            '#!/usr/bin/env python\n# -*- coding: utf-8 -*-\n' + IMPORT + '__PROBE__("start", 1)\n'
        )

    def test_existing_import_not_duplicated(self, transformer):
        code = IMPORT + '# #probe("a", 1)\n'
        assert transformer.transform(code, "/proj/app/a.py") == IMPORT + '__PROBE__("a", 1)\n'

    def test_preserves_crlf(self, transformer):
        code = 'def f():\r\n    # #probe("x", 1)\r\n    return 1\r\n'
        assert transformer.transform(code, "/proj/app/f.py") == (
            "from probekit import probe_emit as __PROBE__\r\n"
            'def f():\r\n    __PROBE__("x", 1)\r\n    return 1\r\n'
        )

    def test_trailing_comments_are_not_directives(self, transformer):
        code = 'x = 1  # #probe("a", 1)\n'
        assert transformer.transform(code, "/proj/app/x.py") is None

    def test_no_directives_returns_none(self, transformer):
        assert transformer.transform("x = 1\n", "/proj/app/x.py") is None

    def test_custom_identifier_and_directive(self):
        options = DirectiveOptions(probe_ident="emit_probe", directive="@trace")
        transformer = DirectiveTransformer(options, cwd="/proj")
        result = transformer.transform('# @trace("x")\n', "/proj/x.py")
        assert result == 'from probekit import probe_emit as emit_probe\nemit_probe("x")\n'

    def test_invalid_identifier_rejected(self):
        with pytest.raises(ValidationError):
            DirectiveOptions(probe_ident="not valid")


# ---------------------------------------------------------------------------
# File selection
# ---------------------------------------------------------------------------
class TestMatching:
    CODE = '# #probe("a", 1)\n'

    def test_only_python_files(self, transformer):
        assert transformer.transform(self.CODE, "/proj/app/notes.txt") is None

    def test_outside_include_skipped(self, transformer):
        assert transformer.transform(self.CODE, "/elsewhere/app.py") is None
        assert transformer.transform(self.CODE, "/project/app.py") is None

    def test_installed_packages_excluded_by_default(self, transformer):
        path = "/proj/.venv/lib/python3.12/site-packages/lib.py"
        assert transformer.transform(self.CODE, path) is None

        keep_all = DirectiveTransformer(DirectiveOptions(keep_default_excludes=False), cwd="/proj")
        assert keep_all.transform(self.CODE, path) is not None

    def test_relative_include_prefix(self):
        transformer = DirectiveTransformer(DirectiveOptions(include="src"), cwd="/proj")
        assert transformer.matches("/proj/src/app.py")
        assert not transformer.matches("/proj/tests/test_app.py")

    def test_regex_and_callable_include(self):
        by_regex = DirectiveTransformer(DirectiveOptions(include=re.compile(r"/app/")), cwd="/proj")
        assert by_regex.matches("/anywhere/app/x.py")
        assert not by_regex.matches("/anywhere/lib/x.py")

        by_callable = DirectiveTransformer(
            DirectiveOptions(include=lambda path: path.endswith("wanted.py")), cwd="/proj"
        )
        assert by_callable.matches("/tmp/wanted.py")
        assert not by_callable.matches("/proj/other.py")

    def test_user_exclude_is_additive(self):
        options = DirectiveOptions(exclude=re.compile(r"_test\.py$"))
        transformer = DirectiveTransformer(options, cwd="/proj")
        assert not transformer.matches("/proj/app/service_test.py")
        assert not transformer.matches("/proj/site-packages/x.py")
        assert transformer.matches("/proj/app/service.py")

    def test_windows_separators_normalized(self):
        transformer = DirectiveTransformer(cwd="C:\\proj")
        assert transformer.matches("C:\\proj\\app\\x.py")


# ---------------------------------------------------------------------------
# Import hook
# ---------------------------------------------------------------------------
class TestImportHook:
    @pytest.fixture
    def hooked(self, tmp_path, monkeypatch):
        (tmp_path / "probe_hook_target.py").write_text(
            textwrap.dedent(
                """\
                def work(x):
                    # #probe("work", x * 2)
                    return x
                """
            )
        )
        (tmp_path / "probe_hook_plain.py").write_text("VALUE = 1\n")
        monkeypatch.syspath_prepend(str(tmp_path))
        importlib.invalidate_caches()
        finder = install_import_hook(DirectiveOptions(include=str(tmp_path)), cwd=str(tmp_path))
        yield finder
        uninstall_import_hook(finder)
        for name in ("probe_hook_target", "probe_hook_plain"):
            sys.modules.pop(name, None)

    @pytest.mark.asyncio
    async def test_rewritten_module_emits(self, hooked, tmp_path):
        module = importlib.import_module("probe_hook_target")
        assert isinstance(module.__loader__, DirectiveLoader)
        assert module.__PROBE__ is probekit.probe_emit

        with probekit.get_probe(timeout=0.5) as probe:
            assert probe.run(module.work, 21) == 21
            assert await probe.next() == ProbeEvent("work", 42)

        assert not list(tmp_path.glob("__pycache__/probe_hook_target*"))

    def test_module_without_directives_loads_normally(self, hooked):
        module = importlib.import_module("probe_hook_plain")
        assert module.VALUE == 1
        assert not hasattr(module, "__PROBE__")

    def test_uninstall_is_idempotent(self, hooked):
        assert uninstall_import_hook(hooked) is True
        assert uninstall_import_hook(hooked) is False
        assert hooked not in sys.meta_path
