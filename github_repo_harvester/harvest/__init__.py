from .repo_metrics import fetch_repo_metrics, harvest_metrics
from .search_all import search_all

__all__ = ["fetch_repo_metrics", "harvest_metrics", "search_all"]
