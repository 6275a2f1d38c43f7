"""searchchat - web chat backend with a search-and-scrape research agent"""

__version__ = "0.1.0"
