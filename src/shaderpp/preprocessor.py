import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from shaderpp.diag import (
    Diagnostic,
    DirectiveSyntaxError,
    IncludeResolutionError,
    ShaderError,
    ShaderIOError,
    StructuralError,
)
from shaderpp.normalizer import SourceLine, collapse_blank_lines, normalize_lines
from shaderpp.options import PreprocessOptions, normalize_options
from shaderpp.search_path import include_search_dirs

logger = logging.getLogger(__name__)

_IDENT_RE = re.compile(r"[A-Za-z_]\w*")
_INCLUDE_RE = re.compile(r"^(?:\"(?P<quote>[^\"\n]+)\"|<(?P<angle>[^>\n]+)>)$")
_DIRECTIVE_RE = re.compile(r"^\s*#\s*(?P<name>[A-Za-z_]\w*)(?P<body>.*)$")
_PASSTHROUGH_CONDITIONALS = frozenset({"if", "ifdef"})
_PSEUDO_FILENAMES = frozenset({"<input>", "<stdin>"})
_MAX_PATH_VISITS = 2
_VERSION_FIRST = "version directive must be the first statement"


@dataclass
class GuardEntry:
    name: str
    filename: str
    line: int
    line_text: str
    column: int
    defined_line: int | None = None
    closed_line: int | None = None
    passthrough: bool = False

    @property
    def is_open(self) -> bool:
        return self.closed_line is None


@dataclass
class ParseState:
    guard_stack: list[GuardEntry] = field(default_factory=list)
    seen_guards: set[str] = field(default_factory=set)
    once_files: set[str] = field(default_factory=set)
    version_seen: bool = False
    suppress_depth: int = 0
    suppressed_at: SourceLine | None = None
    include_stack: list[str] = field(default_factory=list)
    include_trace: list[str] = field(default_factory=list)

    @property
    def suppressing(self) -> bool:
        return self.suppress_depth > 0

    def last_open_entry(self, start: int = 0) -> GuardEntry | None:
        for entry in reversed(self.guard_stack[start:]):
            if entry.is_open:
                return entry
        return None

    def last_undefined_guard(self, start: int = 0) -> GuardEntry | None:
        for entry in reversed(self.guard_stack[start:]):
            if entry.is_open and not entry.passthrough and entry.defined_line is None:
                return entry
        return None

    def guard_defined(self, name: str) -> bool:
        return any(
            entry.name == name and not entry.passthrough and entry.defined_line is not None
            for entry in self.guard_stack
        )


@dataclass(frozen=True)
class PreprocessResult:
    source: str
    line_map: tuple[tuple[str, int], ...]
    include_trace: tuple[str, ...]


class _OutputBuilder:
    def __init__(self) -> None:
        self._lines: list[SourceLine] = []

    def append(self, line: SourceLine) -> None:
        self._lines.append(line)

    def extend(self, lines: list[SourceLine]) -> None:
        self._lines.extend(lines)

    def build(self) -> list[SourceLine]:
        return self._lines


def _format_include_reference(include_name: str, is_angled: bool) -> str:
    if is_angled:
        return f"<{include_name}>"
    return f'"{include_name}"'


def _format_include_trace(source: str, line: int, reference: str, include_path: str) -> str:
    return f"{source}:{line}: #include {reference} -> {include_path}"


def _parse_directive(text: str) -> tuple[str, str] | None:
    if not text.lstrip().startswith("#"):
        return None
    match = _DIRECTIVE_RE.match(text)
    if match is None:
        return None
    return match.group("name"), match.group("body")


def _column_of(text: str, token: str) -> int:
    if token:
        index = text.find(token)
        if index >= 0:
            return index
    return len(text) - len(text.lstrip())


def _display_text(line: SourceLine) -> str:
    return line.raw or line.text


def _diagnostic(line: SourceLine, message: str, *, token: str = "") -> Diagnostic:
    text = _display_text(line)
    return Diagnostic(line.filename, text, line.number, message, _column_of(text, token))


def _source_id(filename: str) -> str:
    if filename in _PSEUDO_FILENAMES:
        return filename
    return str(Path(filename).resolve())


def _build_result(lines: list[SourceLine], state: ParseState) -> PreprocessResult:
    collapsed = collapse_blank_lines(lines)
    if collapsed and collapsed[-1].is_blank:
        collapsed.pop()
    return PreprocessResult(
        "\n".join(line.text for line in collapsed),
        tuple((line.filename, line.number) for line in collapsed),
        tuple(state.include_trace),
    )


def preprocess_source(
    source: str,
    *,
    filename: str = "<input>",
    options: PreprocessOptions | None = None,
) -> PreprocessResult:
    processor = _Preprocessor(normalize_options(options))
    lines = processor.process(source, filename=filename)
    return _build_result(lines, processor.state)


def preprocess_file(
    path: str | Path,
    *,
    options: PreprocessOptions | None = None,
) -> PreprocessResult:
    filename = str(path)
    try:
        source = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeError) as error:
        raise ShaderIOError(f"Could not open shader file '{filename}': {error}") from error
    return preprocess_source(source, filename=filename, options=options)


class _Preprocessor:
    def __init__(self, options: PreprocessOptions) -> None:
        self._include_dirs = include_search_dirs(options)
        self.state = ParseState()

    def process(self, source: str, *, filename: str) -> list[SourceLine]:
        source_id = _source_id(filename)
        self.state.include_stack.append(source_id)
        lines = self._process_text(source, filename=filename, source_id=source_id)
        self.state.include_stack.pop()
        return lines

    def _process_text(self, source: str, *, filename: str, source_id: str) -> list[SourceLine]:
        state = self.state
        out = _OutputBuilder()
        stack_depth = len(state.guard_stack)
        for line in normalize_lines(source, filename):
            parsed = _parse_directive(line.text)
            if state.suppressing:
                self._track_suppressed(parsed)
                continue
            if parsed is None:
                self._emit_content(line, out)
                continue
            name, body = parsed
            if name == "version":
                self._handle_version(line, out)
                continue
            if name == "pragma":
                if self._handle_pragma(body, line, source_id):
                    del state.guard_stack[stack_depth:]
                    return []
                continue
            if name == "ifndef":
                self._handle_ifndef(body, line)
                continue
            if name == "define":
                self._handle_define(body, line, out, stack_depth)
                continue
            if name == "endif":
                self._handle_endif(line, out, stack_depth)
                continue
            if name in _PASSTHROUGH_CONDITIONALS:
                self._emit_content(line, out)
                text = _display_text(line)
                state.guard_stack.append(
                    GuardEntry(
                        body.strip(),
                        line.filename,
                        line.number,
                        text,
                        _column_of(text, "#"),
                        passthrough=True,
                    )
                )
                continue
            if name == "include":
                out.extend(self._handle_include(body, line))
                continue
            self._emit_content(line, out)
        self._check_terminated(stack_depth)
        return out.build()

    def _emit_content(self, line: SourceLine, out: _OutputBuilder) -> None:
        if self.state.version_seen:
            out.append(line)
            return
        if line.is_blank:
            return
        raise StructuralError(_VERSION_FIRST, _diagnostic(line, _VERSION_FIRST))

    def _track_suppressed(self, parsed: tuple[str, str] | None) -> None:
        if parsed is None:
            return
        name, _ = parsed
        state = self.state
        if name == "ifndef" or name in _PASSTHROUGH_CONDITIONALS:
            state.suppress_depth += 1
        elif name == "endif":
            state.suppress_depth -= 1
            if not state.suppressing:
                state.suppressed_at = None

    def _handle_version(self, line: SourceLine, out: _OutputBuilder) -> None:
        if self.state.version_seen:
            logger.debug("%s:%d: dropping repeated #version", line.filename, line.number)
            return
        out.append(line)
        self.state.version_seen = True

    def _handle_pragma(self, body: str, line: SourceLine, source_id: str) -> bool:
        tokens = body.split()
        if not tokens:
            message = "Expected 'once' after #pragma"
            raise DirectiveSyntaxError(message, _diagnostic(line, message, token="pragma"))
        if tokens != ["once"]:
            message = f"Unsupported pragma '{' '.join(tokens)}', only '#pragma once' is recognized"
            raise DirectiveSyntaxError(message, _diagnostic(line, message, token=tokens[0]))
        if source_id in self.state.once_files:
            logger.debug("%s: skipping repeated #pragma once file", line.filename)
            return True
        self.state.once_files.add(source_id)
        return False

    def _handle_ifndef(self, body: str, line: SourceLine) -> None:
        state = self.state
        guard = body.strip()
        if not guard:
            message = "Expected guard name after #ifndef"
            raise DirectiveSyntaxError(message, _diagnostic(line, message, token="ifndef"))
        if _IDENT_RE.fullmatch(guard) is None:
            message = f"Invalid guard name '{guard}'"
            raise DirectiveSyntaxError(message, _diagnostic(line, message, token=guard))
        if guard in state.seen_guards and state.guard_defined(guard):
            logger.debug("%s:%d: suppressing guarded region %s", line.filename, line.number, guard)
            state.suppress_depth = 1
            state.suppressed_at = line
            return
        state.seen_guards.add(guard)
        text = _display_text(line)
        state.guard_stack.append(
            GuardEntry(guard, line.filename, line.number, text, _column_of(text, "#"))
        )

    def _handle_define(
        self,
        body: str,
        line: SourceLine,
        out: _OutputBuilder,
        stack_depth: int,
    ) -> None:
        parts = body.split()
        if len(parts) == 1:
            entry = self.state.last_undefined_guard(stack_depth)
            if entry is not None and entry.name == parts[0]:
                entry.defined_line = line.number
                return
        self._emit_content(line, out)

    def _handle_endif(self, line: SourceLine, out: _OutputBuilder, stack_depth: int) -> None:
        entry = self.state.last_open_entry(stack_depth)
        if entry is None:
            message = "#endif without matching #ifndef"
            raise StructuralError(message, _diagnostic(line, message))
        entry.closed_line = line.number
        if entry.passthrough:
            out.append(line)

    def _handle_include(self, body: str, line: SourceLine) -> list[SourceLine]:
        state = self.state
        include_name, is_angled = self._parse_include_target(body, line)
        reference = _format_include_reference(include_name, is_angled)
        include_path = self._resolve_include(include_name, is_angled, reference, line)
        include_path_text = str(include_path)
        source_id = str(include_path.resolve())
        state.include_trace.append(
            _format_include_trace(line.filename, line.number, reference, include_path_text)
        )
        if state.include_stack.count(source_id) >= _MAX_PATH_VISITS:
            chain = " -> ".join((*state.include_stack, source_id))
            message = f"Circular include detected: {chain}"
            raise IncludeResolutionError(message, _diagnostic(line, message, token=reference))
        try:
            include_source = include_path.read_text(encoding="utf-8")
        except (OSError, UnicodeError) as error:
            message = f"Unable to read include {reference}: {error}"
            raise ShaderIOError(message, _diagnostic(line, message, token=reference)) from error
        logger.debug("%s:%d: including %s", line.filename, line.number, include_path_text)
        state.include_stack.append(source_id)
        try:
            return self._process_text(
                include_source,
                filename=include_path_text,
                source_id=source_id,
            )
        except ShaderError as error:
            error.add_include_frame(line.filename, line.number)
            raise
        finally:
            state.include_stack.pop()

    def _parse_include_target(self, body: str, line: SourceLine) -> tuple[str, bool]:
        target = body.strip()
        if not target:
            message = 'Empty #include directive, expected <filename> or "filename"'
            raise DirectiveSyntaxError(message, _diagnostic(line, message, token="include"))
        match = _INCLUDE_RE.match(target)
        if match is None:
            message = 'Malformed #include directive, expected <filename> or "filename"'
            raise DirectiveSyntaxError(message, _diagnostic(line, message, token=target))
        quoted_name = match.group("quote")
        angle_name = match.group("angle")
        include_name = quoted_name if quoted_name is not None else angle_name
        assert include_name is not None
        return include_name, angle_name is not None

    def _resolve_include(
        self,
        include_name: str,
        is_angled: bool,
        reference: str,
        line: SourceLine,
    ) -> Path:
        if is_angled:
            for root in self._include_dirs:
                candidate = Path(root) / include_name
                if candidate.is_file():
                    return candidate
            searched = ", ".join(f"'{root}'" for root in self._include_dirs) or "(none registered)"
            message = f"Could not find include {reference} in include directories: {searched}"
            raise IncludeResolutionError(message, _diagnostic(line, message, token=reference))
        candidate = Path(include_name)
        if not candidate.is_file():
            message = f"Could not open include file {reference}: no such file in '{Path.cwd()}'"
            raise ShaderIOError(message, _diagnostic(line, message, token=reference))
        return candidate

    def _check_terminated(self, stack_depth: int) -> None:
        state = self.state
        if state.suppressed_at is not None:
            line = state.suppressed_at
            message = "unterminated include guard: repeated guard region is never closed"
            raise StructuralError(message, _diagnostic(line, message, token="#"))
        entry = state.last_open_entry(stack_depth)
        if entry is not None:
            kind = "conditional" if entry.passthrough else "include guard"
            message = f"unterminated {kind} '{entry.name}' opened in '{entry.filename}' on line {entry.line}"
            raise StructuralError(
                message,
                Diagnostic(entry.filename, entry.line_text, entry.line, message, entry.column),
            )
