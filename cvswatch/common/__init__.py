"""Shared primitives: events, cancellation, scheduling combinators, paths."""
