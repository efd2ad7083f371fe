"""SyTest - integration test harness for federated Matrix homeservers."""

__version__ = "0.1.0"
