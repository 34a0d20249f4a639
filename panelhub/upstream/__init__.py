"""Upstream adapter: HTTP client, identity strategies and the router API.

Import concrete classes from the submodules (``panelhub.upstream.client``,
``panelhub.upstream.router_api``); this package module stays import-light so
``panelhub.schemas`` can depend on ``panelhub.upstream.errors``.
"""
