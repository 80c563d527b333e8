"""MedLegal AI - document analysis backend for personal-injury case management."""

__version__ = "0.1.0"
