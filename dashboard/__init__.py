"""
Autopilot Dashboard

Status API for the autonomous orchestrator.
"""
