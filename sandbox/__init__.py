"""
Sandbox Module

Isolated execution context for untrusted code snippets.

This module provides:
- A child process that hosts an interpreter engine
- Line-delimited JSON message protocol (init/ready/fatal/run/result)
- Capture of stdout/stderr in a fresh namespace per run
- Output capping with a truncation marker

WARNING: The child process gives concurrency isolation, not security isolation.
Any language-level safety is the responsibility of the engine it hosts.
"""

__version__ = "0.1.0"
