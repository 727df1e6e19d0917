"""CLI commands for TestSys."""
