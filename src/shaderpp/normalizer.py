from collections.abc import Iterable
from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class SourceLine:
    filename: str
    number: int
    text: str
    raw: str = field(default="", compare=False)

    @property
    def is_blank(self) -> bool:
        return not self.text.strip()


def _strip_comments_with_lines(text: str) -> tuple[str, list[int]]:
    # line_starts[i] is the original line number output line i + 1 starts on.
    out: list[str] = []
    line_starts = [1]
    line = 1
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if char == '"':
            end = index + 1
            while end < length and text[end] not in '"\n':
                end += 1
            if end < length and text[end] == '"':
                end += 1
            out.append(text[index:end])
            index = end
            continue
        if char == "/" and index + 1 < length:
            following = text[index + 1]
            if following == "/":
                end = text.find("\n", index + 2)
                index = length if end < 0 else end
                continue
            if following == "*":
                end = text.find("*/", index + 2)
                stop = length if end < 0 else end + 2
                line += text.count("\n", index, stop)
                index = stop
                continue
        out.append(char)
        if char == "\n":
            line += 1
            line_starts.append(line)
        index += 1
    return "".join(out), line_starts


def strip_comments(text: str) -> str:
    stripped, _ = _strip_comments_with_lines(text)
    return stripped


def collapse_blank_lines(lines: Iterable[SourceLine]) -> list[SourceLine]:
    out: list[SourceLine] = []
    previous_blank = False
    for line in lines:
        if line.is_blank:
            if not previous_blank:
                out.append(replace(line, text=""))
            previous_blank = True
            continue
        out.append(line)
        previous_blank = False
    return out


def _normalize(text: str, filename: str) -> tuple[list[SourceLine], bool]:
    stripped, line_starts = _strip_comments_with_lines(text)
    if not stripped:
        return [], False
    chunks = stripped.split("\n")
    terminated = stripped.endswith("\n")
    if terminated:
        chunks.pop()
    originals = text.split("\n")
    lines = [
        SourceLine(
            filename,
            number,
            chunk.removesuffix("\r"),
            originals[number - 1].removesuffix("\r"),
        )
        for number, chunk in zip(line_starts, chunks)
    ]
    return collapse_blank_lines(lines), terminated


def normalize_lines(text: str, filename: str = "<input>") -> list[SourceLine]:
    lines, _ = _normalize(text, filename)
    return lines


def normalize_source(text: str, *, trim_trailing_newline: bool = False) -> str:
    lines, terminated = _normalize(text, "<input>")
    if not lines:
        return ""
    rendered = "\n".join(line.text for line in lines)
    if terminated and not trim_trailing_newline:
        rendered += "\n"
    return rendered
