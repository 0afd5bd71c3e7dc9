from __future__ import annotations

import pytest
from django.test.utils import override_settings

from graphql_testkit.exceptions import GraphQLTestFailure
from graphql_testkit.resources import load_resource

COUNTDOWN = "subscription { countdown(start: 3) }\n"


def test_loads_absolute_path(tmp_path) -> None:
    resource = tmp_path / "countdown.graphql"
    resource.write_text(COUNTDOWN, encoding="utf-8")

    assert load_resource(str(resource), search_dirs=[]) == COUNTDOWN


def test_loads_relative_to_search_dirs_in_order(tmp_path) -> None:
    first = tmp_path / "first"
    second = tmp_path / "second"
    (second / "subscriptions").mkdir(parents=True)
    (second / "subscriptions" / "countdown.graphql").write_text(COUNTDOWN, encoding="utf-8")
    first.mkdir()

    assert (
        load_resource("subscriptions/countdown.graphql", search_dirs=[str(first), str(second)])
        == COUNTDOWN
    )


def test_uses_resource_dirs_setting(tmp_path) -> None:
    (tmp_path / "countdown.graphql").write_text(COUNTDOWN, encoding="utf-8")

    with override_settings(GRAPHQL_TESTKIT={"RESOURCE_DIRS": [str(tmp_path)]}):
        assert load_resource("countdown.graphql") == COUNTDOWN


def test_falls_back_to_working_directory(tmp_path, monkeypatch) -> None:
    (tmp_path / "local.graphql").write_text(COUNTDOWN, encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    assert load_resource("local.graphql", search_dirs=[]) == COUNTDOWN


def test_loads_package_resource() -> None:
    text = load_resource("example_project.website:graphql/hello.graphql", search_dirs=[])

    assert "hello(name: $name)" in text


def test_missing_package_falls_through_to_files(tmp_path) -> None:
    with pytest.raises(GraphQLTestFailure):
        load_resource("not_a_real_package_xyz:query.graphql", search_dirs=[str(tmp_path)])


def test_missing_resource_fails_with_setup_message() -> None:
    with pytest.raises(GraphQLTestFailure) as excinfo:
        load_resource("subscriptions/does-not-exist.graphql", search_dirs=[])

    assert str(excinfo.value) == (
        "Test setup failure - could not load GraphQL resource: "
        "subscriptions/does-not-exist.graphql"
    )


def test_undecodable_resource_fails(tmp_path) -> None:
    resource = tmp_path / "binary.graphql"
    resource.write_bytes(b"\xff\xfe\x00")

    with pytest.raises(GraphQLTestFailure) as excinfo:
        load_resource(str(resource), search_dirs=[])

    assert isinstance(excinfo.value.__cause__, UnicodeDecodeError)
