"""Storefront asset discovery, GitHub mirror sync and CDN HTML rewriting."""

__version__ = "0.1.0"
