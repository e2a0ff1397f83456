"""
Cloud Folders

One folder interface (list / create / delete / search) over Dropbox,
Google Drive, Box and OneDrive, with OAuth token renewal, per-provider rate
limiting, listing caches and a single error taxonomy.
"""

__version__ = "1.0.0"
