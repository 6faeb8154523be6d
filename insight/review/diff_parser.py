from __future__ import annotations

from insight.errors import DiffParseError
from insight.review.models import DiffLine, FileDiff, Hunk


def parse_unified_diff(text: str) -> list[FileDiff]:
    """
    解析多文件 unified diff（`git format-patch` / `git diff` 输出）。

    - 文件以 `diff --git` 或 `---`/`+++` 头开始；扩展头（index/mode/rename）忽略
    - hunk 内容按 header 中的行数截止，所以 patch 末尾的 `-- ` 签名不会被当作删除行
    - `\\ No newline at end of file` 忽略
    """
    files: list[FileDiff] = []
    current: FileDiff | None = None
    hunk: Hunk | None = None
    old_left = new_left = 0
    old_line = new_line = 0

    for line in text.splitlines():
        if hunk is not None and (old_left > 0 or new_left > 0):
            if line.startswith("\\"):
                continue
            if line.startswith("+"):
                hunk.lines.append(DiffLine(type="added", lnumNew=new_line, text=line[1:]))
                new_line += 1
                new_left -= 1
                continue
            if line.startswith("-"):
                hunk.lines.append(DiffLine(type="removed", lnumOld=old_line, text=line[1:]))
                old_line += 1
                old_left -= 1
                continue
            if line.startswith(" ") or line == "":
                hunk.lines.append(DiffLine(type="context", lnumNew=new_line, lnumOld=old_line, text=line[1:]))
                old_line += 1
                new_line += 1
                old_left -= 1
                new_left -= 1
                continue
            # hunk 提前结束（计数与内容不符），按新的头部处理
            hunk = None

        if line.startswith("diff --git "):
            current = FileDiff()
            current.pathOld, current.pathNew = _parse_git_header(line)
            files.append(current)
            hunk = None
            continue
        if line.startswith("--- "):
            if current is None or current.hunks:
                current = FileDiff()
                files.append(current)
            current.pathOld = _strip_timestamp(line[4:], line)
            continue
        if line.startswith("+++ ") and current is not None:
            current.pathNew = _strip_timestamp(line[4:], line)
            continue
        if line.startswith("@@"):
            if current is None:
                raise DiffParseError(f"Hunk without file header: {line}")
            old_line, old_left, new_line, new_left = _parse_hunk_header(header=line)
            hunk = Hunk(oldStart=old_line, oldCount=old_left, newStart=new_line, newCount=new_left)
            current.hunks.append(hunk)
            continue

    return files


_ESCAPES = {"a": b"\a", "b": b"\b", "t": b"\t", "n": b"\n", "v": b"\v", "f": b"\f", "r": b"\r", '"': b'"', "\\": b"\\"}
_OCTAL = "01234567"


def _parse_git_header(line: str) -> tuple[str, str]:
    # diff --git a/x b/x；含特殊字符的路径会被 git 用 C 风格引号包起来："a/\344\270\255.c"
    rest = line[len("diff --git ") :]
    if rest.startswith('"'):
        end = _closing_quote(rest, line)
        old, new = rest[: end + 1], rest[end + 1 :].lstrip(" ")
    else:
        marker = rest.find(' "b/')
        if marker < 0:
            marker = rest.find(" b/")
        if marker < 0:
            raise DiffParseError(f"Invalid diff header: {line}")
        old, new = rest[:marker], rest[marker + 1 :]
    old, new = _unquote(old, line), _unquote(new, line)
    if not old.startswith("a/") or not new.startswith("b/"):
        raise DiffParseError(f"Invalid diff header: {line}")
    return old, new


def _strip_timestamp(path: str, line: str) -> str:
    return _unquote(path.split("\t", 1)[0].strip(), line)


def _closing_quote(text: str, line: str) -> int:
    index = 1
    while index < len(text):
        if text[index] == "\\":
            index += 2
            continue
        if text[index] == '"':
            return index
        index += 1
    raise DiffParseError(f"Unterminated quoted path: {line}")


def _unquote(token: str, line: str) -> str:
    """git 的 C 风格引号路径 -> 普通路径；八进制转义按 UTF-8 字节解码。未加引号的原样返回。"""
    if len(token) < 2 or not (token.startswith('"') and token.endswith('"')):
        return token
    body = token[1:-1]
    out = bytearray()
    index = 0
    while index < len(body):
        char = body[index]
        if char != "\\":
            out += char.encode("utf-8")
            index += 1
            continue
        escape = body[index + 1 : index + 2]
        if escape and escape in _OCTAL:
            digits = escape
            while len(digits) < 3 and index + 1 + len(digits) < len(body) and body[index + 1 + len(digits)] in _OCTAL:
                digits += body[index + 1 + len(digits)]
            out.append(int(digits, 8) & 0xFF)
            index += 1 + len(digits)
        elif escape in _ESCAPES:
            out += _ESCAPES[escape]
            index += 2
        else:
            raise DiffParseError(f"Invalid escape in quoted path: {line}")
    return out.decode("utf-8", errors="replace")


def _parse_hunk_header(header: str) -> tuple[int, int, int, int]:
    # @@ -a,b +c,d @@ （省略 ,b / ,d 时行数为 1）
    try:
        parts = header.split(" ")
        old_part = parts[1]
        new_part = parts[2]
        if not old_part.startswith("-") or not new_part.startswith("+"):
            raise ValueError(header)
        old_start, old_count = _parse_range(old_part[1:])
        new_start, new_count = _parse_range(new_part[1:])
        return old_start, old_count, new_start, new_count
    except (IndexError, ValueError) as exc:
        raise DiffParseError(f"Invalid diff hunk header: {header}") from exc


def _parse_range(text: str) -> tuple[int, int]:
    start, _, count = text.partition(",")
    return int(start), int(count) if count else 1
