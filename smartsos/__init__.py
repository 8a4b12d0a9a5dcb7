"""SmartSOS patient monitoring and emergency alert engine.

This package holds the state machines, tickers and notification fan-out that
sit behind the caregiver dashboard. Presentation lives elsewhere.
"""
