"""
romsync - ROM catalog downloader and synchronizer

A Python tool that fetches No-Intro / Redump directory listings, keeps one
preferred release per title, downloads the delta under memory and
concurrency admission control, and reconciles the result against a
persistent SQLite catalog.
"""

__version__ = "0.3.0"
__author__ = "romsync contributors"
