"""Ad-tech request classification, flow correlation and diagnostics."""

__version__ = "1.0.0"
