"""
M365 Export
===========
Read-only export of Microsoft 365 directory and service objects
(Azure AD, Exchange Online, Teams, SharePoint Online, OneDrive) to CSV,
driven by per-resource attribute allowlists.
"""

__version__ = "1.0.0"
__mode__ = "READ-ONLY"
