"""
Maifead Ingestion Module
========================

Source resolution, remote fetching, and normalization of fetched documents.

This module handles:
- Resolving user input into canonical feed endpoints
- Fetching documents with failure classification
- Parsing RSS/Atom, Reddit, and Bluesky documents into normalized entries
- Sanitizing HTML and rewriting media links into embeds
- Icon discovery
"""
