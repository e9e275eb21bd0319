from dataclasses import dataclass

_CONFIGURATION = "SPP-CFG-0001"
_IO = "SPP-IO-0101"
_DIRECTIVE_SYNTAX = "SPP-PP-0201"
_STRUCTURE = "SPP-PP-0202"
_INCLUDE_NOT_FOUND = "SPP-PP-0301"
_COMPILE = "SPP-GL-0401"
_LINK = "SPP-GL-0402"


def _trim_terminators(text: str) -> str:
    return text.rstrip("\r\n")


@dataclass(frozen=True)
class Diagnostic:
    filename: str
    line_text: str
    line: int
    message: str
    column: int = 0

    def format(self) -> str:
        filename = _trim_terminators(self.filename)
        line_text = _trim_terminators(self.line_text)
        message = _trim_terminators(self.message)
        gutter = f"{self.line} |    "
        caret = " " * (len(gutter) + max(self.column, 0)) + "^"
        return "\n".join(
            (
                f"In file '{filename}' on line {self.line}: error: {message}",
                f"{gutter}{line_text}",
                caret,
            )
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "filename": _trim_terminators(self.filename),
            "line": self.line,
            "column": self.column,
            "message": _trim_terminators(self.message),
            "line_text": _trim_terminators(self.line_text),
        }

    def __str__(self) -> str:
        return self.format()


def format_include_frame(filename: str, line: int) -> str:
    return f"Included from: '{filename}', line {line}"


class ShaderError(Exception):
    code = "SPP-0000"

    def __init__(self, message: str, diagnostic: Diagnostic | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.diagnostic = diagnostic
        self.include_frames: list[tuple[str, int]] = []

    def add_include_frame(self, filename: str, line: int) -> None:
        self.include_frames.append((filename, line))

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"code": self.code, "message": self.message}
        if self.diagnostic is not None:
            payload.update(self.diagnostic.to_dict())
        payload["included_from"] = [
            {"filename": filename, "line": line} for filename, line in self.include_frames
        ]
        return payload

    def __str__(self) -> str:
        lines = [self.diagnostic.format() if self.diagnostic is not None else self.message]
        lines.extend(format_include_frame(filename, line) for filename, line in self.include_frames)
        return "\n".join(lines)


class ConfigurationError(ShaderError):
    code = _CONFIGURATION


class ShaderIOError(ShaderError):
    code = _IO


class DirectiveSyntaxError(ShaderError):
    code = _DIRECTIVE_SYNTAX


class StructuralError(ShaderError):
    code = _STRUCTURE


class IncludeResolutionError(ShaderError):
    code = _INCLUDE_NOT_FOUND


class CompileError(ShaderError):
    code = _COMPILE


class LinkError(ShaderError):
    code = _LINK
