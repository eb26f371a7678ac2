"""Synchronization decision engine.

This package provides the primitives for:
- Provenance: the versioned record embedded in every publish commit
- Locating: finding the newest record on the publish branch
- Trust: checking the recorded source commit against source history
- Triggers: rules that force a full rebuild
- Resolving: the touched set between two source commits
- Writing: committing and pushing the publish worktree
- Journal: the local history of past runs
"""
