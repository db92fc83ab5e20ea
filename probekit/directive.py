"""
Directive rewriting - turns probe comments into emit calls.

A full-line comment such as::

    # #probe("order_saved", order.id)

is rewritten to::

    __PROBE__("order_saved", order.id)

and ``from probekit import probe_emit as __PROBE__`` is injected near the
top of the module. Instrumentation therefore stays an inert comment in the
source tree; it only becomes a call when a module is loaded through the
import hook installed by ``install_import_hook()`` (the pytest plugin does
this when ``probekit_rewrite = true``) or rewritten with ``probekit rewrite``.
"""

import ast
import importlib.abc
import importlib.machinery
import importlib.util
import logging
import os
import re
import sys
from collections.abc import Callable

from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

# Type for include/exclude predicates over normalized paths
PathMatcher = Callable[[str], bool]

_CODING_RE = re.compile(r"^[ \t\f]*#.*?coding[:=][ \t]*[-\w.]+")
_DEFAULT_EXCLUDE_PARTS = ("/site-packages/", "/dist-packages/")


def _norm(path: str) -> str:
    return path.replace("\\", "/")


def _is_virtual(path: str) -> bool:
    return not path or path.startswith("<")


class DirectiveOptions(BaseModel):
    """Settings for the directive rewriter."""

    probe_ident: str = "__PROBE__"
    directive: str = "#probe"
    # Path prefix (relative to cwd), regex, or predicate. Default: everything under cwd.
    include: str | re.Pattern | PathMatcher | None = None
    exclude: re.Pattern | PathMatcher | None = None
    keep_default_excludes: bool = True

    model_config = {"frozen": True}

    @field_validator("probe_ident")
    @classmethod
    def _check_ident(cls, v: str) -> str:
        if not v.isidentifier():
            raise ValueError(f"probe_ident must be a Python identifier, got {v!r}")
        return v

    @field_validator("directive")
    @classmethod
    def _check_directive(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("directive must not be empty")
        return v


class DirectiveTransformer:
    """
    Source-to-source rewriter for probe directives.

    Only ``.py`` files selected by ``include`` and not rejected by
    ``exclude`` are touched. Default excludes (installed packages and
    virtual sources like ``<string>``) are kept unless
    ``keep_default_excludes`` is False.
    """

    def __init__(self, options: DirectiveOptions | None = None, cwd: str | None = None):
        self.options = options or DirectiveOptions()
        self._cwd = _norm(cwd or os.getcwd()).rstrip("/")
        self._include = self._build_include(self.options.include)
        self._exclude = self._build_exclude()
        self._line_re = re.compile(
            r"^([ \t]*)#[ \t]*" + re.escape(self.options.directive) + r"[ \t]*\((.*)\)[ \t]*;?[ \t]*(\r?)$",
            re.MULTILINE,
        )
        ident = self.options.probe_ident
        self.import_line = f"from probekit import probe_emit as {ident}"
        self._import_re = re.compile(
            r"^[ \t]*from[ \t]+probekit[ \t]+import[ \t]+probe_emit[ \t]+as[ \t]+" + re.escape(ident) + r"\b",
            re.MULTILINE,
        )

    def _build_include(self, include) -> PathMatcher:
        if callable(include):
            return include
        if isinstance(include, re.Pattern):
            return lambda path: include.search(_norm(path)) is not None

        if isinstance(include, str):
            base = _norm(include if os.path.isabs(include) else os.path.join(self._cwd, include))
        else:
            base = self._cwd
        base = base if base.endswith("/") else base + "/"
        return lambda path: _norm(path).startswith(base)

    def _build_exclude(self) -> PathMatcher:
        exclude = self.options.exclude
        if exclude is None:
            user_exclude: PathMatcher = lambda path: False  # noqa: E731
        elif isinstance(exclude, re.Pattern):
            user_exclude = lambda path: exclude.search(_norm(path)) is not None  # noqa: E731
        else:
            user_exclude = exclude

        if not self.options.keep_default_excludes:
            return user_exclude

        def exclude_with_defaults(path: str) -> bool:
            normalized = _norm(path)
            if _is_virtual(path) or any(part in normalized for part in _DEFAULT_EXCLUDE_PARTS):
                return True
            return user_exclude(path)

        return exclude_with_defaults

    def matches(self, path: str) -> bool:
        """Return True if ``path`` is a file this transformer should rewrite."""
        if not path.endswith(".py"):
            return False
        return bool(self._include(path)) and not self._exclude(path)

    def has_directives(self, code: str) -> bool:
        return self._line_re.search(code) is not None

    def transform(self, code: str, path: str) -> str | None:
        """
        Rewrite directive lines in ``code``.

        Args:
            code: Module source text
            path: File path the source came from

        Returns:
            The rewritten source, or None when the file is not selected or
            contains no directives.
        """
        if not self.matches(path) or not self.has_directives(code):
            return None

        ident = self.options.probe_ident
        rewritten = self._line_re.sub(lambda m: f"{m[1]}{ident}({m[2]}){m[3]}", code)
        if self._import_re.search(rewritten) is None:
            rewritten = self._inject_import(rewritten)
        return rewritten

    def _inject_import(self, code: str) -> str:
        newline = "\r\n" if "\r\n" in code else "\n"
        lines = code.splitlines(keepends=True)
        index = self._import_position(code, lines)
        if index > 0 and not lines[index - 1].endswith(("\n", "\r")):
            lines[index - 1] += newline
        lines.insert(index, self.import_line + newline)
        return "".join(lines)

    @staticmethod
    def _import_position(code: str, lines: list[str]) -> int:
        """Line index after the module docstring and __future__ imports."""
        index = 0
        try:
            tree = ast.parse(code)
        except SyntaxError:
            tree = None

        if tree is not None:
            for position, node in enumerate(tree.body):
                is_docstring = (
                    position == 0
                    and isinstance(node, ast.Expr)
                    and isinstance(node.value, ast.Constant)
                    and isinstance(node.value.value, str)
                )
                is_future = isinstance(node, ast.ImportFrom) and node.module == "__future__"
                if not (is_docstring or is_future):
                    break
                index = node.end_lineno or index

        if index == 0:
            # Shebang on line 1, encoding cookie on line 1 or 2
            if lines and lines[0].startswith("#!"):
                index = 1
            if index < len(lines) and index < 2 and _CODING_RE.match(lines[index]):
                index += 1
        return index


class DirectiveLoader(importlib.machinery.SourceFileLoader):
    """Source loader that rewrites directives before compiling.

    Rewritten modules are compiled from source every time and never
    written to the bytecode cache.
    """

    def __init__(self, fullname: str, path: str, transformer: DirectiveTransformer):
        super().__init__(fullname, path)
        self.transformer = transformer

    def get_code(self, fullname):
        path = self.get_filename(fullname)
        source = importlib.util.decode_source(self.get_data(path))
        rewritten = self.transformer.transform(source, path)
        if rewritten is None:
            return super().get_code(fullname)
        logger.debug(f"Rewrote probe directives in {fullname} ({path})")
        return compile(rewritten, path, "exec", dont_inherit=True)


class DirectiveFinder(importlib.abc.MetaPathFinder):
    """Meta path finder that routes selected source modules through DirectiveLoader."""

    def __init__(self, transformer: DirectiveTransformer):
        self.transformer = transformer

    def find_spec(self, fullname, path, target=None):
        spec = importlib.machinery.PathFinder.find_spec(fullname, path, target)
        if spec is None or spec.origin is None:
            return None
        if not isinstance(spec.loader, importlib.machinery.SourceFileLoader):
            return None
        if not self.transformer.matches(spec.origin):
            return None
        spec.loader = DirectiveLoader(fullname, spec.origin, self.transformer)
        return spec


def install_import_hook(options: DirectiveOptions | None = None, cwd: str | None = None) -> DirectiveFinder:
    """
    Rewrite probe directives in modules imported from now on.

    Modules that are already imported are not affected.

    Returns:
        The installed finder (pass it to ``uninstall_import_hook``)
    """
    finder = DirectiveFinder(DirectiveTransformer(options, cwd=cwd))
    sys.meta_path.insert(0, finder)
    logger.debug("Probe directive import hook installed")
    return finder


def uninstall_import_hook(finder: DirectiveFinder) -> bool:
    """Remove a finder installed by ``install_import_hook``."""
    try:
        sys.meta_path.remove(finder)
    except ValueError:
        return False
    logger.debug("Probe directive import hook removed")
    return True
