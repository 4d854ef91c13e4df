"""cmssync — incremental headless CMS content sync."""

__version__ = "0.1.0"
