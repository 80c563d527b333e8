from medlegal.services.search.search_index_service import SearchIndexService

__all__ = ["SearchIndexService"]
