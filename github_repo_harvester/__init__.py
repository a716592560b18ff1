"""Harvest GitHub repository metadata through the REST API.

Spreads requests over several tokens, rotating when one runs out of quota, and
derives collection sizes from pagination headers instead of downloading them.
"""

from .cli import main
from .connector import GitHubConnector, get_connector
from .credentials import CredentialPool
from .models import NULL_COMMIT, ApiResponse, GitCommit

__all__ = ["main", "GitHubConnector", "get_connector", "CredentialPool", "ApiResponse", "GitCommit", "NULL_COMMIT"]

if __name__ == "__main__":
    main()
