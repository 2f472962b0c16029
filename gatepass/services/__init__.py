"""Services package — all business logic lives here, never in routers.

Files:
  state_machine.py  — pure visit/visitor transition rules and the ScanOutcome type
  gate_scan.py      — gate-scan processor (lock, evaluate, CAS write, retry)
  visits.py         — host-side visit lifecycle (create, confirm, cancel, re-issue, per-visitor status)
  qr.py             — QR token generation, expiry and stamping
  bans.py           — ban registry (personal + system bans)
  licenses.py       — license accountant (recount, onboarding, activation)
  notifier.py       — after-commit visit log + host notification writer
  sweeps.py         — stale-visit and ban expiry sweeps

Rule: routers call services, services call repositories, repositories call the DB.
      No SQLAlchemy queries in routers. No FastAPI imports in services.
"""
