"""Core building blocks: rate limiting, dispatch, validation, responses."""
