"""Pipeline stages.

Each module exposes one async entry point taking a StageContext and returning
a StageResult; sequencing between stages belongs to the orchestrator.
"""
