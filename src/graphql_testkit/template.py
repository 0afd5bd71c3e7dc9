"""HTTP counterpart of the subscription helper for queries and mutations."""

from __future__ import annotations

from typing import Any, Callable, Mapping

from django.test import Client
from graphene_django.utils.testing import graphql_query

from graphql_testkit.conf import get_setting
from graphql_testkit.logging import get_logger
from graphql_testkit.resources import load_resource
from graphql_testkit.response import GraphQLResponse

logger = get_logger("template")


class GraphQLTestTemplate:
    """
    Post GraphQL documents to the project's HTTP endpoint and wrap the answers.

    Headers added with ``with_header`` are sent with every request until
    ``clear_headers`` is called.
    """

    def __init__(
        self,
        graphql_url: str | None = None,
        *,
        client: Client | None = None,
        resource_loader: Callable[[str], str] | None = None,
    ) -> None:
        self.graphql_url: str = (
            graphql_url if graphql_url is not None else get_setting("GRAPHQL_URL")
        )
        self.client = client or Client()
        self._load_resource = resource_loader or load_resource
        self._headers: dict[str, str] = {}

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def with_header(self, name: str, value: str) -> "GraphQLTestTemplate":
        self._headers[name] = value
        return self

    def with_bearer_auth(self, token: str) -> "GraphQLTestTemplate":
        return self.with_header("Authorization", f"Bearer {token}")

    def clear_headers(self) -> "GraphQLTestTemplate":
        self._headers.clear()
        return self

    def post_for_resource(
        self,
        graphql_resource: str,
        variables: Mapping[str, Any] | None = None,
        operation_name: str | None = None,
    ) -> GraphQLResponse:
        """
        Load a GraphQL document from a resource and post it.

        Parameters:
            graphql_resource (str): Resource identifier understood by ``load_resource``.
            variables (Mapping[str, Any] | None): Query variables.
            operation_name (str | None): Operation to execute when the document holds several.

        Returns:
            GraphQLResponse: Decoded response with the HTTP status code.
        """
        query = self._load_resource(graphql_resource)
        return self.post(query, variables=variables, operation_name=operation_name)

    def post(
        self,
        query: str,
        variables: Mapping[str, Any] | None = None,
        operation_name: str | None = None,
    ) -> GraphQLResponse:
        logger.debug(
            "posting graphql document",
            context={"url": self.graphql_url, "operation_name": operation_name},
        )
        response = graphql_query(
            query,
            operation_name=operation_name,
            variables=dict(variables) if variables is not None else None,
            headers=self.headers or None,
            client=self.client,
            graphql_url=self.graphql_url,
        )
        return GraphQLResponse.from_text(
            response.content.decode(response.charset or "utf-8"),
            response.status_code,
        )
