"""Deep-search crawl package.

Public API::

    from deepsearch.crawl import DeepSearchController
    result = controller.deep_search("regulación de combustibles Ecuador")
"""

from deepsearch.crawl.controller import DeepSearchController
from deepsearch.crawl.search_providers import SearchProviderChain, build_default_chain
from deepsearch.crawl.state import CrawlResult

__all__ = ["DeepSearchController", "SearchProviderChain", "build_default_chain", "CrawlResult"]
