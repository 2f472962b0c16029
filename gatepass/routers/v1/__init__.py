"""v1 router package — all /api/v1/* endpoints live here.

Files:
  visits.py     — visit lifecycle (/visits)
  scans.py      — gate scans (/scans)
  bans.py       — visitor bans (/bans)
  buildings.py  — license state and user onboarding (/buildings)

Rule: Routers only handle HTTP (request parsing, response shaping).
      All business logic delegates to gatepass/services/.
"""
