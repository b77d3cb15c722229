"""Resolvers that repair the recovered module graph."""
