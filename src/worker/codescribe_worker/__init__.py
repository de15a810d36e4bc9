"""Chunked, resumable LLM documentation and pull request review jobs."""
