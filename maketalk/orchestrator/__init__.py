"""Pipeline orchestrator module.

Provides state machine coordination for the presentation pipeline with:
- Stage and entry-mode constants with a total next-stage function
- Per-item failure isolation for every stage
- Resume from conversion or from authored titles
- Stage manifest tracking so aborted output is never resumed from
"""
