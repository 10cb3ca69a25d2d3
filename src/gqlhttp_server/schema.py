"""Reference schema served by ``python -m gqlhttp_server``."""

from __future__ import annotations

from graphql import GraphQLField, GraphQLNonNull, GraphQLObjectType, GraphQLSchema, GraphQLString


def build_reference_schema() -> GraphQLSchema:
    query = GraphQLObjectType(
        "Query",
        {
            "hello": GraphQLField(GraphQLNonNull(GraphQLString), resolve=lambda *_: "world"),
        },
    )
    mutation = GraphQLObjectType(
        "Mutation",
        {
            "dontChange": GraphQLField(
                GraphQLNonNull(GraphQLString), resolve=lambda *_: "didntChange"
            ),
        },
    )
    return GraphQLSchema(query=query, mutation=mutation)
