"""Username template compiler and renderer.

Templates mix literal text with ``{{ ... }}`` actions. An action starts with a
field (``.DisplayName``, ``.RoleName``) or a generator (``random 20``,
``unix_time``) and may pipe the value through transforms::

    v-{{.DisplayName | truncate 8}}-{{random 20}}-{{unix_time}}

Every name is resolved when the template is compiled, so a typo fails before
any credential material is generated.
"""

from __future__ import annotations

import base64
import hashlib
import re
import secrets
import string
import time
import uuid
from dataclasses import dataclass
from functools import partial
from typing import Callable, Mapping, Sequence

from .errors import InvalidTemplateError
from .models import UsernameMetadata

DEFAULT_USERNAME_TEMPLATE = "v-{{.DisplayName | truncate 8}}-{{.RoleName | truncate 8}}-{{random 20}}-{{unix_time}}"
ALPHANUMERIC = string.ascii_letters + string.digits

_ACTION = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_TOKEN = re.compile(r'"(?:[^"\\]|\\.)*"|\||[^\s|"]+')
_INTEGER = re.compile(r"\d+")
_ESCAPE = re.compile(r"\\(.)")

Segment = Callable[[UsernameMetadata], str]


def _random(length: int) -> str:
    return "".join(secrets.choice(ALPHANUMERIC) for _ in range(length))


def _unix_time() -> str:
    return str(int(time.time()))


def _unix_time_millis() -> str:
    return str(time.time_ns() // 1_000_000)


def _uuid() -> str:
    return str(uuid.uuid4())


def _sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _truncate(length: int, value: str) -> str:
    return value[:length]


def _truncate_sha256(length: int, value: str) -> str:
    if len(value) <= length:
        return value
    return value[: length - 8] + _sha256(value)[:8]


def _replace(old: str, new: str, value: str) -> str:
    return value.replace(old, new)


def _base64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


@dataclass(frozen=True, slots=True)
class _Function:
    args: tuple[type, ...]
    impl: Callable[..., str]
    minimum: int = 0


FIELDS: Mapping[str, Callable[[UsernameMetadata], str]] = {
    "DisplayName": lambda metadata: metadata.display_name,
    "RoleName": lambda metadata: metadata.role_name,
}

GENERATORS: Mapping[str, _Function] = {
    "random": _Function((int,), _random, minimum=1),
    "unix_time": _Function((), _unix_time),
    "unix_time_millis": _Function((), _unix_time_millis),
    "uuid": _Function((), _uuid),
}

TRANSFORMS: Mapping[str, _Function] = {
    "truncate": _Function((int,), _truncate),
    "truncate_sha256": _Function((int,), _truncate_sha256, minimum=9),
    "uppercase": _Function((), str.upper),
    "lowercase": _Function((), str.lower),
    "replace": _Function((str, str), _replace),
    "sha256": _Function((), _sha256),
    "base64": _Function((), _base64),
}


class UsernameTemplate:
    """Compiled, reusable username template; safe to share between tasks."""

    __slots__ = ("_source", "_segments")

    def __init__(self, source: str, segments: Sequence[Segment]) -> None:
        self._source = source
        self._segments = tuple(segments)

    @property
    def source(self) -> str:
        return self._source

    def render(self, metadata: UsernameMetadata) -> str:
        return "".join(segment(metadata) for segment in self._segments)

    def __repr__(self) -> str:
        return f"UsernameTemplate({self._source!r})"


def compile_template(source: str | None = None) -> UsernameTemplate:
    """Compile ``source``; an empty template selects the default grammar."""

    text = source or DEFAULT_USERNAME_TEMPLATE
    segments: list[Segment] = []
    cursor = 0
    for match in _ACTION.finditer(text):
        segments.extend(_literal(text[cursor : match.start()]))
        segments.append(_compile_action(match.group(1)))
        cursor = match.end()
    segments.extend(_literal(text[cursor:]))
    return UsernameTemplate(text, segments)


def render(template: UsernameTemplate, metadata: UsernameMetadata) -> str:
    """Render ``template`` against ``metadata``."""

    return template.render(metadata)


def _literal(text: str) -> list[Segment]:
    if "{{" in text:
        raise InvalidTemplateError(f"Unterminated action in username template near {text!r}")
    if not text:
        return []
    return [lambda _metadata: text]


def _compile_action(content: str) -> Segment:
    if "{{" in content:
        raise InvalidTemplateError(f"Nested action in username template: {{{{{content}}}}}")
    if _TOKEN.sub("", content).strip():
        raise InvalidTemplateError(f"Unterminated string in action {{{{{content}}}}}")
    commands: list[list[str]] = [[]]
    for token in _TOKEN.findall(content):
        if token == "|":
            commands.append([])
        else:
            commands[-1].append(token)
    if any(not command for command in commands):
        raise InvalidTemplateError(f"Empty command in action {{{{{content}}}}}")

    head, *pipeline = commands
    source = _compile_head(head)
    transforms = tuple(_compile_transform(command) for command in pipeline)

    def _evaluate(metadata: UsernameMetadata) -> str:
        value = source(metadata)
        for transform in transforms:
            value = transform(value)
        return value

    return _evaluate


def _compile_head(command: list[str]) -> Segment:
    name, *args = command
    if name.startswith("."):
        getter = FIELDS.get(name[1:])
        if getter is None:
            raise InvalidTemplateError(f"Unknown field '{name}'")
        if args:
            raise InvalidTemplateError(f"Field '{name}' takes no arguments")
        return getter
    if name in TRANSFORMS:
        raise InvalidTemplateError(f"Transform '{name}' needs a piped value")
    function = GENERATORS.get(name)
    if function is None:
        raise InvalidTemplateError(f"Unknown function '{name}'")
    generate = partial(function.impl, *_parse_args(name, function, args))
    return lambda _metadata: generate()


def _compile_transform(command: list[str]) -> Callable[[str], str]:
    name, *args = command
    function = TRANSFORMS.get(name)
    if function is None:
        if name.startswith(".") or name in GENERATORS:
            raise InvalidTemplateError(f"'{name}' cannot be used as a transform")
        raise InvalidTemplateError(f"Unknown transform '{name}'")
    return partial(function.impl, *_parse_args(name, function, args))


def _parse_args(name: str, function: _Function, args: list[str]) -> list[object]:
    if len(args) != len(function.args):
        raise InvalidTemplateError(f"'{name}' expects {len(function.args)} argument(s), got {len(args)}")
    parsed: list[object] = []
    for kind, token in zip(function.args, args):
        if kind is int:
            if not _INTEGER.fullmatch(token):
                raise InvalidTemplateError(f"'{name}' expects an integer argument, got {token!r}")
            number = int(token)
            if number < function.minimum:
                raise InvalidTemplateError(f"'{name}' argument must be at least {function.minimum}")
            parsed.append(number)
        else:
            if len(token) < 2 or not (token.startswith('"') and token.endswith('"')):
                raise InvalidTemplateError(f"'{name}' expects a quoted string argument, got {token!r}")
            parsed.append(_ESCAPE.sub(r"\1", token[1:-1]))
    return parsed


__all__ = [
    "ALPHANUMERIC",
    "DEFAULT_USERNAME_TEMPLATE",
    "FIELDS",
    "GENERATORS",
    "TRANSFORMS",
    "UsernameTemplate",
    "compile_template",
    "render",
]
