"""Realtime infrastructure (Socket.IO).

Connection bookkeeping, event fan-out and the server handlers the board
frontend talks to. Client-side counterparts live in ``taskboard.sync``.
"""
