"""Turns a sync plan into rendered artifacts in the publish worktree."""
