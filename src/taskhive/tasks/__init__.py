"""
Task subsystem.

Components:
- task_models.py: data structures (Member, Group, Task, TaskStatus, Priority)
- task_store.py: SQLite-backed storage + query/update helpers
- ledger.py: per-member outstanding task counters driven by lifecycle transitions
- coordinator.py: task lifecycle operations (create/reassign/status/delete/reconcile)
- reconcile_scheduler.py: polling loop that runs the reconciliation sweep
"""
