"""Core module - site-neutral configuration, errors, models and observability.

This module contains the domain models shared by the local store, the
sync engine and the push engine. It is intentionally independent of any
particular remote CMS.

CMS-specific logic (WordPress REST, SEOPress, ...) belongs in /connectors/.
"""

__version__ = "1.0.0"
