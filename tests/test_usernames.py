"""Tests for username template compilation and rendering."""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor

import pytest

from sqlcreds.errors import InvalidTemplateError
from sqlcreds.models import UsernameMetadata
from sqlcreds.usernames import DEFAULT_USERNAME_TEMPLATE, compile_template, render


@pytest.mark.parametrize(
    ("display_name", "role_name", "pattern"),
    [
        ("token", "myrole", r"v-token-myrole-[a-zA-Z0-9]{20}-[0-9]{10}"),
        ("token-foo", "myrole", r"v-token-fo-myrole-[a-zA-Z0-9]{20}-[0-9]{10}"),
        ("token_foo", "myrole", r"v-token_fo-myrole-[a-zA-Z0-9]{20}-[0-9]{10}"),
        ("token.foo", "myrole", r"v-token\.fo-myrole-[a-zA-Z0-9]{20}-[0-9]{10}"),
        ("token", "myrole-foo", r"v-token-myrole-f-[a-zA-Z0-9]{20}-[0-9]{10}"),
        ("token", "myrole_foo", r"v-token-myrole_f-[a-zA-Z0-9]{20}-[0-9]{10}"),
        ("token", "myrole.foo", r"v-token-myrole\.f-[a-zA-Z0-9]{20}-[0-9]{10}"),
    ],
)
def test_default_template_shape(display_name: str, role_name: str, pattern: str) -> None:
    template = compile_template("")
    metadata = UsernameMetadata(display_name=display_name, role_name=role_name)

    for _ in range(1000):
        assert re.fullmatch(pattern, template.render(metadata))


def test_default_template_values_differ_between_renders() -> None:
    template = compile_template(None)
    metadata = UsernameMetadata(display_name="token", role_name="myrole")

    names = {template.render(metadata) for _ in range(200)}

    assert len(names) == 200


def test_empty_source_selects_default_grammar() -> None:
    assert compile_template("").source == DEFAULT_USERNAME_TEMPLATE


@pytest.mark.parametrize(
    ("source", "pattern"),
    [
        ("foo-bar", r"foo-bar"),
        (
            "foobar-{{.DisplayName | truncate 8}}-{{.RoleName | truncate 8}}-{{random 20}}-{{unix_time}}",
            r"foobar-displayn-longrole-[a-zA-Z0-9]{20}-[0-9]{10}",
        ),
        (
            "foobar_{{random 10}}-{{.RoleName | uppercase}}.{{unix_time}}x{{.DisplayName | truncate 5}}",
            r"foobar_[a-zA-Z0-9]{10}-LONGROLENAME\.[0-9]{10}xdispl",
        ),
        ("{{ .RoleName | replace \"name\" \"x\" | lowercase }}", r"longrolex"),
        ("{{random 4 | uppercase}}", r"[A-Z0-9]{4}"),
        ("{{.DisplayName | truncate_sha256 10}}", r"di[0-9a-f]{8}"),
        ("{{.RoleName | base64}}", r"bG9uZ3JvbGVuYW1l"),
        ("u-{{uuid}}", r"u-[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"),
        ("{{unix_time_millis}}", r"[0-9]{13}"),
    ],
)
def test_custom_templates(source: str, pattern: str) -> None:
    metadata = UsernameMetadata(display_name="displayname", role_name="longrolename")

    assert re.fullmatch(pattern, render(compile_template(source), metadata))


def test_truncate_sha256_keeps_short_values() -> None:
    template = compile_template("{{.DisplayName | truncate_sha256 20}}")

    assert template.render(UsernameMetadata(display_name="short")) == "short"


@pytest.mark.parametrize(
    "source",
    [
        "{{.Nickname}}",
        "{{.DisplayName | reverse}}",
        "{{shuffle 3}}",
        "{{random}}",
        "{{random 0}}",
        "{{random ten}}",
        "{{truncate 8}}",
        "{{.DisplayName | random 3}}",
        "{{.DisplayName | truncate}}",
        "{{.DisplayName 3}}",
        "{{.DisplayName | replace old new}}",
        "{{.DisplayName | }}",
        "{{ }}",
        "v-{{.DisplayName",
        '{{.RoleName | replace "a}}',
    ],
)
def test_invalid_templates_fail_at_compile_time(source: str) -> None:
    with pytest.raises(InvalidTemplateError):
        compile_template(source)


def test_compiled_template_is_shareable_across_threads() -> None:
    template = compile_template("")
    metadata = UsernameMetadata(display_name="token", role_name="myrole")

    with ThreadPoolExecutor(max_workers=8) as pool:
        names = list(pool.map(lambda _: template.render(metadata), range(400)))

    assert len(set(names)) == len(names)
    assert all(name.startswith("v-token-myrole-") for name in names)
