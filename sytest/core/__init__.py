"""Core utilities shared by every SyTest component."""
