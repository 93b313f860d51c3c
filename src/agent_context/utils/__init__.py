from .text_search import SearchMatch, search_multiple_keywords

__all__ = ["SearchMatch", "search_multiple_keywords"]
