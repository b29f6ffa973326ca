"""
Assetflow Engine - front-end asset pipelines with incremental rebuilds.

This package contains:
- pipeline/: domain models, registry, change detection, build scheduler
- stages/: concrete transform stages (Sass, minifiers, images, fonts, ...)
- notify/: run result notifiers
- devserver/: static server with live-reload channel
"""

__version__ = "0.1.0"
