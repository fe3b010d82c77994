"""Isolated execution of per-source parsing scripts.

A parsing script is Python source that defines ``parse(content)`` and returns
a list of dicts with ``title``, ``url`` and optionally ``body``, ``summary``,
``publish_date`` and ``author``. Scripts are untrusted, so they are checked
statically, then executed in a throwaway process with a whitelisted builtins
table and only pure parsing helpers in scope. The parent enforces a
wall-clock limit and kills the process when it is exceeded.

Example script::

    def parse(content):
        feed = parse_feed(content)
        return [{"title": e.get("title"), "url": e.get("link")} for e in feed["entries"]]
"""

import ast
import asyncio
import builtins
import io
import json
import logging
import multiprocessing
import re
from types import SimpleNamespace
from typing import Any, Dict, List, Tuple

import feedparser
from bs4 import BeautifulSoup

from ..exceptions import ScriptRejectedError
from .models import ExtractionResult, RecordDraft

logger = logging.getLogger(__name__)

SCRIPT_FILENAME = "<parsing-script>"

_SAFE_BUILTIN_NAMES = (
    "abs", "all", "any", "bool", "dict", "enumerate", "filter", "float",
    "frozenset", "int", "isinstance", "len", "list", "map", "max", "min",
    "next", "range", "reversed", "round", "set", "slice", "sorted", "str",
    "sum", "tuple", "zip", "Exception", "ValueError", "KeyError",
    "IndexError", "LookupError", "TypeError", "AttributeError", "StopIteration",
    "RuntimeError", "ArithmeticError", "ZeroDivisionError",
    "True", "False", "None",
)

# str.format can reach attributes by name at runtime
_FORBIDDEN_ATTRIBUTES = {
    "format", "format_map", "gi_frame", "gi_code", "cr_frame", "cr_code",
    "ag_frame", "ag_code", "f_back", "f_builtins", "f_globals", "f_locals",
}

# Alternate keys accepted from scripts, mapped onto draft fields
_KEY_ALIASES = {
    "link": "url",
    "content": "body",
    "abstract": "summary",
    "description": "summary",
    "pubDate": "publish_date",
    "published": "publish_date",
    "publication_date": "publish_date",
    "date": "publish_date",
    "authors": "author",
    "creator": "author",
}
_DRAFT_KEYS = set(RecordDraft.model_fields)


def validate_script(source: str) -> ast.Module:
    """
    Statically check a parsing script.

    Raises:
        SyntaxError: If the script does not parse
        ScriptRejectedError: If it uses imports, scope escapes or private names,
            or does not define ``parse``
    """
    tree = ast.parse(source, filename=SCRIPT_FILENAME)

    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise ScriptRejectedError(f"imports are not allowed (line {node.lineno})")
        if isinstance(node, (ast.Global, ast.Nonlocal)):
            raise ScriptRejectedError(f"global/nonlocal are not allowed (line {node.lineno})")
        if isinstance(node, ast.Name) and node.id.startswith("_"):
            raise ScriptRejectedError(f"private name {node.id!r} (line {node.lineno})")
        if isinstance(node, ast.Attribute) and (
            node.attr.startswith("_") or node.attr in _FORBIDDEN_ATTRIBUTES
        ):
            raise ScriptRejectedError(f"attribute {node.attr!r} is not allowed (line {node.lineno})")
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)) and node.name.startswith("_"):
            raise ScriptRejectedError(f"private definition {node.name!r} (line {node.lineno})")

    defines_parse = any(
        isinstance(node, ast.FunctionDef) and node.name == "parse" for node in tree.body
    )
    if not defines_parse:
        raise ScriptRejectedError("script must define parse(content)")

    return tree


# -- helpers visible to scripts ------------------------------------------------


def parse_feed(text: str) -> Dict[str, Any]:
    """Parse RSS/Atom text; never fetches."""
    parsed = feedparser.parse(io.BytesIO(text.encode("utf-8")))
    return {"feed": parsed.feed, "entries": parsed.entries}


def soup(markup: str) -> BeautifulSoup:
    """Parse HTML or XML markup."""
    return BeautifulSoup(markup, "html.parser")


def select(markup: str, css: str) -> List[Any]:
    """CSS-select elements from markup."""
    return soup(markup).select(css)


def text_of(markup: Any) -> str:
    """Visible text of markup or an element."""
    if hasattr(markup, "get_text"):
        return markup.get_text(" ", strip=True)
    return soup(str(markup)).get_text(" ", strip=True)


def _script_globals() -> Dict[str, Any]:
    safe_builtins = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}
    return {
        "__builtins__": safe_builtins,
        "re": SimpleNamespace(
            compile=re.compile, search=re.search, match=re.match,
            fullmatch=re.fullmatch, findall=re.findall, finditer=re.finditer,
            sub=re.sub, split=re.split, escape=re.escape,
            I=re.I, IGNORECASE=re.IGNORECASE, M=re.M, MULTILINE=re.MULTILINE,
            S=re.S, DOTALL=re.DOTALL,
        ),
        "json": SimpleNamespace(loads=json.loads, dumps=json.dumps),
        "parse_feed": parse_feed,
        "soup": soup,
        "select": select,
        "text_of": text_of,
        "strip_html": text_of,
    }


def _plain_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return [text_of(v) if hasattr(v, "get_text") else str(v) for v in value]
    if hasattr(value, "get_text"):
        return text_of(value)
    return str(value)


def _plain_item(item: Dict[Any, Any]) -> Dict[str, Any]:
    """Reduce a script result item to picklable draft fields."""
    plain: Dict[str, Any] = {}
    for key, value in item.items():
        field = _KEY_ALIASES.get(key, key)
        if field in _DRAFT_KEYS and field not in plain:
            plain[field] = _plain_value(value)
    return plain


def _execute(source: str, content: str, conn: Any) -> None:
    """Child process entry point."""
    try:
        tree = validate_script(source)
        namespace = _script_globals()
        exec(compile(tree, SCRIPT_FILENAME, "exec"), namespace)
        result = namespace["parse"](content)

        if not isinstance(result, list):
            conn.send(("error", f"parse() returned {type(result).__name__}, expected list"))
            return

        items = [_plain_item(item) for item in result if isinstance(item, dict)]
        conn.send(("ok", (items, len(result) - len(items))))
    except Exception as e:
        conn.send(("error", f"{type(e).__name__}: {e}"))
    finally:
        conn.close()


class ScriptSandbox:
    """Run parsing scripts in a separate, time-bounded process."""

    def __init__(self, timeout: float = 10.0) -> None:
        """
        Initialize sandbox.

        Args:
            timeout: Wall-clock seconds a script may run before it is killed
        """
        self.timeout = timeout
        self._ctx = multiprocessing.get_context("spawn")

    async def run(self, source: str, content: str) -> ExtractionResult:
        """Run a script without blocking the event loop."""
        return await asyncio.to_thread(self.run_sync, source, content)

    def run_sync(self, source: str, content: str) -> ExtractionResult:
        """Run a script and wait for its result."""
        try:
            validate_script(source)
        except SyntaxError as e:
            return ExtractionResult(error=f"Script syntax error: {e}")
        except ScriptRejectedError as e:
            return ExtractionResult(error=f"Script rejected: {e}")

        status, payload = self._spawn(source, content)
        if status != "ok":
            logger.warning("Parsing script failed: %s", payload)
            return ExtractionResult(error=payload)

        items, dropped = payload
        drafts = []
        for item in items:
            try:
                drafts.append(RecordDraft(**item))
            except ValueError as e:
                dropped += 1
                logger.debug("Dropping invalid script item %r: %s", item, e)

        if dropped:
            logger.info("Parsing script produced %d unusable items", dropped)
        return ExtractionResult(drafts=drafts)

    def _spawn(self, source: str, content: str) -> Tuple[str, Any]:
        receiver, sender = self._ctx.Pipe(duplex=False)
        process = self._ctx.Process(
            target=_execute,
            args=(source, content, sender),
            daemon=True,
        )
        process.start()
        sender.close()

        try:
            if not receiver.poll(self.timeout):
                return "error", f"Script timed out after {self.timeout:g}s"
            return receiver.recv()
        except EOFError:
            return "error", f"Script process exited with code {process.exitcode}"
        finally:
            if process.is_alive():
                process.terminate()
            process.join(timeout=1.0)
            if process.is_alive():
                process.kill()
                process.join()
            receiver.close()
