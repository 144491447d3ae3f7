"""Local artifact transfer.

Submodules:
    filters  -- FilterRules (extension suffix AND filename substring, each
                match-all when empty) and iterative tree walks.
    progress -- ProgressTracker: throttled bytes/percentage/speed/ETA events.
    engine   -- TransferEngine: skip-if-exists, disk space pre-check, 64 KiB
                chunked copy with cancel/pause checkpoints before every chunk,
                audit entries for start, completion, and cancellation.
"""
