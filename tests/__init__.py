"""
GatePass Test Suite
===================

Test organization:
- test_state_machine.py  - pure transition rules (no database)
- test_qr.py             - QR tokens and phone normalisation
- test_bans.py, test_licenses.py, test_visits.py, test_sweeps.py
                         - services against a temporary SQLite database
- test_gate_scan.py      - gate-scan scenarios, idempotency and concurrency
- test_api.py            - HTTP surface through httpx ASGITransport

Run tests:
    pytest
"""
