import logging

logger = logging.getLogger("storefront")

__version__ = "0.1.0"
