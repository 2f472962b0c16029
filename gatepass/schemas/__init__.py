"""Pydantic schemas package.

Folder intent:
  common.py    — CamelModel base + HealthResponse (all schemas inherit CamelModel)
  visit.py     — visit creation, snapshots, cancellation, per-visitor status
  scan.py      — gate scan request / outcome
  ban.py       — visitor ban create / check / unban
  building.py  — license state, user onboarding and activation
"""
