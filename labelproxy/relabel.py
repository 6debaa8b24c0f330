"""Inject node labels into Prometheus text exposition lines.

Lines are processed one at a time in input order. Comment lines
(anything containing ``#``) pass through untouched, but a ``TYPE`` comment
decides whether the sample lines that follow get labels: summary and
histogram families are left alone, every other family is relabeled.
"""
from enum import Enum
from typing import Iterable, Iterator, Mapping, Tuple

from labelproxy.errors import FormatError


class InjectMode(Enum):
    """Whether sample lines in the current family receive labels."""
    INJECT = "inject"
    SKIP = "skip"


def render_labels(labels: Mapping[str, str]) -> str:
    """Render a label set as a sorted, comma separated ``name="value"`` list.

    Values are inserted verbatim; quotes, backslashes and newlines are not
    escaped.
    """
    fragments = sorted(f'{name}="{value}"' for name, value in labels.items())
    return ",".join(fragments)


def next_mode(line: str, mode: InjectMode) -> InjectMode:
    """Return the mode that applies after ``line`` has been read."""
    if "#" not in line or "TYPE" not in line:
        return mode
    if "summary" in line or "histogram" in line:
        return InjectMode.SKIP
    return InjectMode.INJECT


def inject_labels(line: str, fragment: str) -> str:
    """Add a rendered label fragment to one sample line."""
    index = line.find("}")
    if index != -1:
        return line[:index] + "," + fragment + line[index:]

    items = line.strip().split(" ")
    if len(items) != 2:
        raise FormatError(line)
    name, value = items
    return f"{name}{{{fragment}}} {value}"


def relabel_line(line: str, labels: Mapping[str, str],
                 mode: InjectMode) -> Tuple[str, InjectMode]:
    """Relabel a single line and return it together with the next mode."""
    return _relabel(line, render_labels(labels), mode)


def _relabel(line: str, fragment: str, mode: InjectMode) -> Tuple[str, InjectMode]:
    if "#" in line:
        return line, next_mode(line, mode)
    if mode is InjectMode.SKIP:
        return line, mode
    return inject_labels(line, fragment), mode


def relabel_lines(lines: Iterable[str], labels: Mapping[str, str],
                  mode: InjectMode = InjectMode.INJECT) -> Iterator[str]:
    """Relabel a sequence of lines, yielding newline terminated output.

    The mode starts as ``mode`` and is carried from each line to the next.
    A ``FormatError`` stops the iteration at the offending line.
    """
    fragment = render_labels(labels)
    for line in lines:
        out, mode = _relabel(line.rstrip("\n"), fragment, mode)
        yield out + "\n"
