"""
Sky-Install Core — Resource lifecycle for the SCAII environment.

Fetches, installs and cleans the core suite, the Sky-RTS and arbitrary
backends:

  intent     declarative flag relations, ResourceIntent
  paths      ResourcePaths under the managed root
  lifecycle  get / install / clean state machine
  fetcher    git transport
  glue       per-kind materialization (archives for the core's web deps)
  fs_ops     filesystem mutations
  errors     error taxonomy and exit codes

# ---- Changelog ----
# [2026-10-12] Initial creation.
#   What: Package init for installer_core.  Kept free of imports so
#         resource_registry can depend on installer_core.errors without an
#         import cycle.
# -------------------
"""

__version__ = "0.1.0"
