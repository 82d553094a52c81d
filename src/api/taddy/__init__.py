"""
Taddy Package - structured podcast and episode search over GraphQL.
"""

from api.taddy.taddy import TaddyClient, build_search_arguments, escape_graphql_string

__all__ = ["TaddyClient", "build_search_arguments", "escape_graphql_string"]
