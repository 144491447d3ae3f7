"""Artifact Relay -- discover, copy, and deploy versioned build artifacts from network shares.

Core modules:
    config      -- RelayConfig via pydantic-settings (.env, env vars, JSON file).
                   Tasks carry a VersionMatch or DateMatch rule; legacy
                   remote_paths x target_versions expand into VersionMatch tasks.
    runner      -- ScanRunner: one cycle of time-window gate -> per task
                   match/select -> copy -> deploy, with task-scoped errors and a
                   distinct cancelled flag.
    controller  -- RelayController: single-active-run guard, background worker,
                   cancel/pause/resume, connectivity test, manual deploy.
    scheduler   -- Interval trigger for unattended runs.
    concurrency -- RunGuard, RunContext (cancel/pause flags), disk space check.
    events      -- EventBus for log and progress telemetry.
    history     -- Capped newest-first audit history.
    cli         -- Click CLI (scan, watch, test-connection, deploy).

Subpackages:
    discovery -- Folder name parsing, recency selection, time windows.
    transfer  -- Filters, progress tracking, chunked copy engine.
    deploy    -- SSH/SFTP transport, command templating, sequential fan-out.
"""
