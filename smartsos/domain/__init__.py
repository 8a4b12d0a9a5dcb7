"""Domain models shared by every SmartSOS service."""
