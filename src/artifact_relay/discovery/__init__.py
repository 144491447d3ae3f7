"""Candidate discovery -- name parsing, recency selection, and time windows.

Modules:
    matcher  -- Parse ``YYYY_MM_DD_HH_MM(Version)`` folder names, scan share
                directories, and look up date-named folders directly.
    selector -- Newest candidate per version, gated to today or yesterday.
    window   -- ``HH:MM-HH:MM`` time range gate for whole scan cycles.
"""
