"""Deployment to remote Linux hosts over SSH/SFTP.

Submodules:
    transport  -- RemoteSession protocol (exists, makedirs, open_write,
                  execute) and ParamikoSession, the paramiko SSHClient +
                  SFTPClient implementation. Connection and authentication
                  failures surface as DeploymentError.
    templating -- ``${filename}`` substitution for post-transfer commands.
    fanout     -- DeploymentFanout: strictly sequential per-target deploys,
                  overwrite-on-exists uploads in 64 KiB chunks with progress,
                  best-effort post commands, per-target failure isolation.
                  Also manual single-target deploys and connectivity checks.
"""
